"""aipipe: pipe text into any LLM from the terminal."""

__version__ = "0.1.0"
