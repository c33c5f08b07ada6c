# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    VaultError,
    get_database_url,
    get_valkey_url,
    get_email_config,
    get_token_signing_key,
)
from clients.postgres_client import PostgresClient, PostgresTransaction
from clients.valkey_client import ValkeyClient
from clients.email_client import EmailAttachment, EmailGatewayClient, EmailGatewayError
