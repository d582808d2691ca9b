from django.urls import path

from .views import BlockchainResultsView, BlockchainStatusView, BlockchainWinnerView

app_name = "blockchain"


urlpatterns = [
    path("status/", BlockchainStatusView.as_view(), name="status"),
    path("results/", BlockchainResultsView.as_view(), name="results"),
    path("winner/", BlockchainWinnerView.as_view(), name="winner"),
]
