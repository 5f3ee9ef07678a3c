# Supabase tables: sessions, session_attendees
# This file documents the expected database schema
# Actual operations are handled via the backend facade in service.py

"""
Expected Supabase table structure:

sessions:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, not null)
- host_id: uuid (foreign key to profiles.id, not null)
- title: text (not null)
- description: text (nullable)
- start_time: timestamptz (not null)
- end_time: timestamptz (not null) - strictly after start_time
- location: text (nullable)
- created_at: timestamp (default: now())

session_attendees:
- id: uuid (primary key)
- session_id: uuid (foreign key to sessions.id, not null)
- user_id: uuid (foreign key to profiles.id, not null)
- status: text (default: 'confirmed') - values: confirmed, tentative, declined
- created_at: timestamp (default: now())
- unique constraint on (session_id, user_id)

No row for a (session, user) pair means the user has not responded.
"""
