"""NextDNS API adapter."""

from .client import NextDNSClient, NextDNSSession, NextDNSSessionFactory

__all__ = ["NextDNSClient", "NextDNSSession", "NextDNSSessionFactory"]
