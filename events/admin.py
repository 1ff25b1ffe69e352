from django.contrib import admin
from .models import Event, Festival, Registration


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ('slug', 'name', 'kind', 'category', 'registration_status', 'registry_backend', 'file_sink')
    list_filter = ('kind', 'category', 'registration_status', 'registry_backend')
    search_fields = ('slug', 'name', 'description')
    prepopulated_fields = {'slug': ('name',)}


@admin.register(Festival)
class FestivalAdmin(admin.ModelAdmin):
    list_display = ('name', 'registration_enabled', 'updated_at')


@admin.register(Registration)
class RegistrationAdmin(admin.ModelAdmin):
    list_display = ('main_email', 'main_phone', 'event', 'team_name', 'registration_date')
    list_filter = ('event__kind', 'event')
    search_fields = ('main_email', 'main_phone', 'team_name', 'event__name')
    date_hierarchy = 'registration_date'
    readonly_fields = ('registration_date',)
