"""InsightStream: CSV upload, AI cleaning, insights and chat over a hosted LLM."""

__version__ = "0.1.0"
