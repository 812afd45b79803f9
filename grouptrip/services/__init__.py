"""Ledger services: validation, balance engine, mutations and read models."""
