"""Repository layer for the Instagram reply copilot.

Provides query and mutation functions over the core tables:
- users: get_user, get_by_instagram_account, lock_user, create_user,
         connect_instagram, disconnect_instagram
- messages: insert_if_new, get_message, get_by_external_id, list_messages,
            list_conversation, list_pending_without_draft, transition_status,
            refresh_status, save_draft, get_stats, purge_messages,
            find_inconsistencies
- knowledge: add_manual_correction, add_media_entry, add_interaction,
             upsert_media_entry, upsert_interaction, list_all, list_recent,
             count, remove, update_manual_correction, promote_interaction,
             get_stats, find_cap_violations
- guidelines: add_guideline, list_guidelines, list_active, set_active,
              delete_guideline
- settings: get_global, set_global, get_user_settings, update_user_settings,
            clear_user_setting
- observability: log_generation
"""
