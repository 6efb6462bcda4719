"""
Clarus Backend

A FastAPI service that turns submitted URLs (videos, articles, podcasts,
social posts) into structured multi-section AI analyses.
Provides content extraction, transcription, analysis, translation and
feed polling.
"""

__version__ = "1.0.0"
