from django.urls import include, path

from . import views

urlpatterns = [
    path('', views.index, name='index'),
    path('payments/', include('payments.urls')),
]
