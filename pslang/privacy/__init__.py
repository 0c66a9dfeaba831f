"""Consent handling and retention-tier gating for analytics"""
