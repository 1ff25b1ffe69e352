from .events import (
    EventListView,
    EventDetailView,
    FestivalInfoView,
    DefaultWhatsappView,
)
from .registrations import (
    RegisterEventView,
    WorkshopRegisterView,
    RegistrationDetailsView,
    AdminRegistrationsView,
    AdminRegistrationFlushView,
    AdminRegistrationExportView,
)
from .analytics import RegistrationAnalyticsView
