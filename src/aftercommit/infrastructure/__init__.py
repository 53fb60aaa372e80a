"""
Infrastructure Layer
SQLAlchemy integration and observability
"""
