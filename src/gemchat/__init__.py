"""Core package for the gemchat project.

gemchat pairs a terminal chat client with a FastAPI proxy in front of the
Gemini API. The client side lives in :mod:`gemchat.chat`, the proxy in
:mod:`gemchat.api`.
"""

__version__ = "0.1.0"
