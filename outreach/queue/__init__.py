"""
Durable outreach task queue: task types, persistence and dispatch.
"""
