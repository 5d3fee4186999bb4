"""Chat assistant: context assembly, model backend and the tool-call loop.

Nothing here keeps conversation state between requests; the caller sends the
full history every time and gets it back extended by one exchange.
"""
