# Supabase tables: groups, group_members
# This file documents the expected database schema
# Actual operations are handled via the backend facade in service.py

"""
Expected Supabase table structure:

groups:
- id: uuid (primary key)
- name: text (not null)
- subject: text (not null)
- description: text (nullable)
- capacity: integer (nullable, default: 10)
- is_public: boolean (default: true)
- subject_tags: text[] (nullable)
- invitation_code: text (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (default: now())

group_members:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, not null)
- user_id: uuid (foreign key to profiles.id, not null)
- role: text (default: 'member') - values: admin, member
- joined_at: timestamp (default: now())
- unique constraint on (group_id, user_id)

Member counts are derived from group_members, never stored on groups.
"""
