# backend/webhooks/__init__.py
# HTTP routes + reconciliation workflow
