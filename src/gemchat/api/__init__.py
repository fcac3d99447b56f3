"""FastAPI proxy relaying generation requests to the Gemini API."""
