"""
AHS Chat - Text and voice conversations with Gemini.

Typed messages and spoken utterances are sent to a Gemini text model;
replies come back as plain text, a fenced code block, or an Imagen
picture requested with the /image command.
"""

__version__ = "1.0.0"
