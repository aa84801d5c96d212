"""JuiceTool: Juicebox protocol event indexer."""

__version__ = "0.1.0"
