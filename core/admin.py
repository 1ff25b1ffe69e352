from django.contrib import admin
from .models import StoredFile


@admin.register(StoredFile)
class StoredFileAdmin(admin.ModelAdmin):
    list_display = ('filename', 'original_name', 'content_type', 'section', 'size', 'created_at')
    list_filter = ('section', 'content_type', 'created_at')
    search_fields = ('filename', 'original_name')
    exclude = ('data',)
    readonly_fields = ('filename', 'content_type', 'size', 'created_at')
