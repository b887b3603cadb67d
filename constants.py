ATTACHMENT_MIME_TYPES = { #media types accepted as checklist item evidence
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/heic",
    "image/webp",
}

DELETED_CHECKLIST_NAME = "Deleted Checklist" #shown in history when the checklist template no longer exists
UNKNOWN_STAFF_NAME = "Unknown Staff" #shown in history when the submitter can not be found
