# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    get_database_url,
    get_gateway_config,
)
from clients.postgres_client import PostgresClient
from clients.leanx_client import LeanxClient, PaymentGatewayError
