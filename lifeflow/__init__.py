"""
LifeFlow email rules engine.

A privacy-first pipeline for one account owner's inbox that:
- Strips personally identifying content from each message
- Classifies it remotely (or with the local keyword scorer as fallback)
- Evaluates the owner's automation rules against the classification
- Creates or updates tasks, events, invoices, packages and orders
"""
