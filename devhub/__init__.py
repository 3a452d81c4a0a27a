"""
Backend package for the developer-community platform.

Users, projects, techs, skills and blogs are served over a FastAPI app
backed by a relational store, a Redis read cache and S3-compatible
object storage for images.
"""
