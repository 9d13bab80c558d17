from vault_pki_audit.main import run

run()
