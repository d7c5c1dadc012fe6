from django.contrib import admin

from .models import Address, Country, Order, OrderItem, State


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "number", "email", "total_price", "total_paid", "is_completed", "gateway", "created_at")
    list_filter = ("is_completed", "currency", "created_at")
    search_fields = ("number", "email")
    readonly_fields = ("total_paid", "total_authorized", "date_paid", "date_ordered", "created_at", "updated_at")
    raw_id_fields = ("billing_address", "shipping_address")
    date_hierarchy = "created_at"
    inlines = [OrderItemInline]


@admin.register(Address)
class AddressAdmin(admin.ModelAdmin):
    list_display = ("id", "first_name", "last_name", "city", "country", "state", "created_at")
    list_filter = ("country",)
    search_fields = ("first_name", "last_name", "city", "zip_code")


@admin.register(Country)
class CountryAdmin(admin.ModelAdmin):
    list_display = ("iso", "name")
    search_fields = ("iso", "name")


@admin.register(State)
class StateAdmin(admin.ModelAdmin):
    list_display = ("name", "abbreviation", "country")
    list_filter = ("country",)
    search_fields = ("name", "abbreviation")
