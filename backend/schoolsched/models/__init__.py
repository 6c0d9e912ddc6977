from schoolsched.models.activity_log import ActivityLog  # noqa: F401
from schoolsched.models.class_section import ClassSection, Section  # noqa: F401
from schoolsched.models.exam_schedule import ExamSchedule, ExamStatus, ExamType  # noqa: F401
from schoolsched.models.notification import Notification, NotificationType  # noqa: F401
from schoolsched.models.schedule import Schedule, ScheduleType, Weekday  # noqa: F401
from schoolsched.models.subject import Subject  # noqa: F401
from schoolsched.models.user import User, UserRole  # noqa: F401
