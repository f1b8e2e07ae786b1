import os

REGION = os.environ.get("AWS_REGION", "ap-south-1")

DEFAULT_GUEST_COUNT = 1

# approval retries when another admin approves on the same resource first
MAX_APPROVAL_ATTEMPTS = 3

TOUR_RESOURCE_NAME = "Library Tour"
TOUR_DEFAULT_NOTES = "Tour booking with Library Staff guide"

# a pending notification older than this is treated as abandoned; keep it at or
# above the notification queue's visibility timeout
NOTIFICATION_CLAIM_TIMEOUT_SECONDS = 900
