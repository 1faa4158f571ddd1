"""
CoupleQuest AI service layer: resilient prompt generation and sentiment analysis.
"""

__version__ = "1.0.0"
