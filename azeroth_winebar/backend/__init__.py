"""
Backend package for Azeroth Winebar: models, handlers, services and the
provisioning core.
"""
