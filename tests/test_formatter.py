from reminders.formatter import format_reminder_notification, merge_med_name

def test_reminder_notification_copy():
    n = format_reminder_notification("Ibuprofen")
    assert n.title == "Medication Reminder"
    assert n.body == "Time to take Ibuprofen!"

def test_merge_med_name_appends_distinct_names():
    assert merge_med_name("MedA", "MedB") == "MedA & MedB"
    assert merge_med_name("MedA & MedB", "MedA") == "MedA & MedB"

def test_merge_med_name_is_plain_substring_match():
    # "Med" is already contained in "MedA"; no word boundaries, case-sensitive.
    assert merge_med_name("MedA", "Med") == "MedA"
    assert merge_med_name("MedA", "meda") == "MedA & meda"
