from django.urls import path
from . import views

urlpatterns = [
    path('health/', views.health, name='health'),
    path('stations/search/', views.station_search, name='station_search'),
    path('stations/select/', views.select_station, name='select_station'),
    path('chart-data/', views.chart_data, name='chart_data'),
]
