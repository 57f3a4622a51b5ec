"""FastAPI application exposing extraction, crawling and inference status."""
