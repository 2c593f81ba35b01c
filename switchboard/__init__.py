"""Provider switchboard for Claude, Codex and Gemini command-line tools"""

__version__ = "1.0.0"
