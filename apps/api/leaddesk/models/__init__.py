from leaddesk.departments.models import Department
from leaddesk.leads.models import Lead, LeadAssignee, LeadHistory, LeadNote, LeadReminder, LeadTask
from leaddesk.sites.models import Site
from leaddesk.statuses.models import Status
from leaddesk.tasks.models import BoardTask, TaskPriority, TaskStatus
from leaddesk.users.models import User

__all__ = [
	"BoardTask",
	"Department",
	"Lead",
	"LeadAssignee",
	"LeadHistory",
	"LeadNote",
	"LeadReminder",
	"LeadTask",
	"Site",
	"Status",
	"TaskPriority",
	"TaskStatus",
	"User",
]
