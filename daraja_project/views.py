from django.http import JsonResponse

def index(request):
    return JsonResponse({
        "message": "M-Pesa Daraja Payments API",
        "endpoints": {
            "mpesa_initiate": "/payments/mpesa/initiate/",
            "mpesa_callback": "/payments/mpesa/callback/",
            "payment_status": "/payments/mpesa/status/<checkout_request_id>/",
        }
    })
