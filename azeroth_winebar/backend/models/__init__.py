"""
Data models for Azeroth Winebar.
"""
