"""Telegram bot for Solana analytics and threshold alerts backed by the Vybe API."""

__version__ = "0.1.0"
