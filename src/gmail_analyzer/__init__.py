"""
Gmail Analyzer

Incrementally fetches new Gmail messages and classifies each one as spam
or legitimate, using a deterministic rule engine first and a local LLM
(Ollama) for everything the rules cannot decide.
"""

__version__ = "1.0.0"
__app_name__ = "Gmail Analyzer"
