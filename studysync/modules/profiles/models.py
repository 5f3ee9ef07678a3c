# Supabase table: profiles
# This file documents the expected database schema
# Actual operations are handled via the backend facade in service.py

"""
Expected Supabase table structure:

profiles:
- id: uuid (primary key, same as auth.users.id)
- name: text (not null)
- email: text (not null)
- avatar: text (nullable) - public URL
- academic_level: text (nullable)
- bio: text (nullable)
- subject_interests: text[] (nullable)
- study_preferences: jsonb (nullable) - {"time_of_day": "any", "group_size": 5}
- created_at: timestamp (default: now())
- updated_at: timestamp (default: now())
"""
