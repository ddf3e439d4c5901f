from app.models.assignment import Assignment
from app.models.doctor_period_month import DoctorPeriodMonth
from app.models.global_setting import GlobalSetting
from app.models.period import Period
from app.models.period_automation import PeriodAutomation
from app.models.profile import Profile
from app.models.reminder_event import ReminderEvent
from app.models.reminder_target import ReminderTarget
from app.models.slot import Slot

__all__ = [
    "Assignment",
    "DoctorPeriodMonth",
    "GlobalSetting",
    "Period",
    "PeriodAutomation",
    "Profile",
    "ReminderEvent",
    "ReminderTarget",
    "Slot",
]
