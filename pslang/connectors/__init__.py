"""Connectors linking local accounts to external AI chat providers"""
