import django_filters as filters
from django.db.models import Q

from aid.models import AidDisbursement
from aid.state_machines import DisbursementStatus, PaymentMethod


class DisbursementFilter(filters.FilterSet):
    application_id = filters.NumberFilter(field_name="application_id")
    student_id = filters.NumberFilter(field_name="student_id")
    method = filters.ChoiceFilter(choices=PaymentMethod.choices)
    status = filters.ChoiceFilter(choices=DisbursementStatus.choices)
    reference = filters.CharFilter(field_name="reference_number", lookup_expr="icontains")
    date_from = filters.DateFilter(field_name="disbursed_at", lookup_expr="date__gte")
    date_to = filters.DateFilter(field_name="disbursed_at", lookup_expr="date__lte")
    search = filters.CharFilter(method="filter_search")

    class Meta:
        model = AidDisbursement
        fields = ["application_id", "student_id", "method", "status"]

    def filter_search(self, queryset, name, value):
        return queryset.filter(
            Q(application__student_name__icontains=value)
            | Q(application__school_name__icontains=value)
            | Q(application_number__icontains=value)
            | Q(reference_number__icontains=value)
            | Q(provider_name__icontains=value)
            | Q(disbursed_by_name__icontains=value)
        )
