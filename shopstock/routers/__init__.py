"""
API Routers

- stock: purchases and listing management
- catalog: public read endpoints
- admin: restock, catalog edits, credits, audit
- cron: scheduled maintenance
- realtime: SSE listing streams
"""
