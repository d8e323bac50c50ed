"""
Frontend packages for Azeroth Winebar.
"""
