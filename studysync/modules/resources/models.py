# Supabase table: resources; storage bucket: studysync
# This file documents the expected database schema
# Actual operations are handled via the backend facade in service.py

"""
Expected Supabase table structure:

resources:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, not null)
- user_id: uuid (foreign key to profiles.id, not null) - uploader
- title: text (not null)
- description: text (nullable)
- file_url: text (not null) - public URL of the stored object
- file_type: text (not null) - MIME type
- tags: text[] (nullable)
- created_at: timestamp (default: now())

Stored objects live in the public bucket under group-<group_id>/<uuid>.<ext>.
The object key is recovered from file_url on delete.
"""
