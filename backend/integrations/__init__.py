# backend/integrations/__init__.py
# External API clients + normalization
