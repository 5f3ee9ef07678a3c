# Supabase table: messages
# This file documents the expected database schema
# Actual operations are handled via the backend facade in service.py

"""
Expected Supabase table structure:

messages:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, not null)
- user_id: uuid (foreign key to profiles.id, not null)
- content: text (not null)
- created_at: timestamp (default: now())

Append-only. Realtime must be enabled on the table (INSERT events).
"""
