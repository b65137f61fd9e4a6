"""Adapters for notifications, the hosts file and the firewall."""
