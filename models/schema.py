# Centralized collection and field names to prevent drift with the web client.

COL_SCHEDULED_REMINDERS = "scheduledReminders"  # scheduledReminders/{reminder_id}
COL_USERS = "users"
COL_FCM_TOKENS = "fcmTokens"  # users/{user_id}/fcmTokens/{token}

FIELD_DUE_AT = "dueAt"
FIELD_USER_ID = "userId"
FIELD_MEDICATION_NAME = "medicationName"

COL_SYSTEM = "system"  # system/healthz is read by the health probe
