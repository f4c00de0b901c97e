"""Trakt resource clients and payload models."""
