"""Adapters binding the reconciliation ports to NextDNS, SQL storage and files."""
