from django.apps import apps
from django.urls import path

from . import views

payments_app = apps.get_app_config("payments")

urlpatterns = [
    path(
        'mpesa/initiate/',
        views.InitiatePaymentView.as_view(store=payments_app.store, client_factory=payments_app.get_client),
        name='mpesa_initiate',
    ),
    path('mpesa/callback/', views.StkCallbackView.as_view(store=payments_app.store), name='mpesa_callback'),
    path(
        'mpesa/status/<str:checkout_request_id>/',
        views.PaymentStatusView.as_view(store=payments_app.store),
        name='payment_status',
    ),
]
