"""Vercel entry point package."""
