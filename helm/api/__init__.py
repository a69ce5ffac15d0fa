# FILE: helm/api/__init__.py
