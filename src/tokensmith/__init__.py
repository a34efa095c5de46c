"""
Tokensmith package.

Provides:
- Prompt building and the contract generation gateway (FastAPI + httpx)
- Payment-gated client: wallet sessions (web3.py), payment coordinator, CLI
"""
