from django.contrib import admin

from recruitdesk.tenants.models import TeamMember
from recruitdesk.tenants.models import Tenant


class TeamMemberInline(admin.TabularInline):
    model = TeamMember
    extra = 0
    fields = ["email", "name", "is_active"]


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ["name", "slug", "created"]
    search_fields = ["name", "slug"]
    readonly_fields = ["created", "modified"]
    inlines = [TeamMemberInline]


@admin.register(TeamMember)
class TeamMemberAdmin(admin.ModelAdmin):
    list_display = ["email", "tenant", "is_active", "created"]
    list_filter = ["is_active"]
    search_fields = ["email", "tenant__name"]
    raw_id_fields = ["tenant"]
