"""
ProdAssist API

FastAPI service exposing arc sessions over HTTP and SSE.
"""
