"""kcdeploy: Keycloak + PostgreSQL provisioning with LDAP federation."""
