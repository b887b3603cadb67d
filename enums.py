from enum import Enum

#enums/enumerations set the options that a variable can be like a Python drop-down menu. Each enum we need for models must be defined here first

class SubmissionStatusEnum(str, Enum): #submission is a draft until it is completed, completed is final
    in_progress = "in_progress"
    completed = "completed"

class ChecklistItemPriorityEnum(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
