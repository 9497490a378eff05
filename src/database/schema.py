"""PostgreSQL schema definition for the arbitrage execution ledger"""


def get_schema_sql() -> str:
    """
    Returns the complete SQL schema for the arbitrage ledger.

    Tables:
    - arbitrage_strategies: Operator-configured routes and thresholds
    - arbitrage_runs: Simulated and executed attempts per strategy
    - ops_arbitrage_events: Per-attempt execution and scan records
    - ops_arbitrage_alerts: PnL anomaly alerts
    - system_settings: Singleton gate state (execution lock, mainnet mode, caps)
    - daily_risk_limits: Per-strategy daily trade and loss aggregates
    - fee_payer_keys: Encrypted Solana fee payer keys with leases
    - fee_payer_topups: Transfers from the ops wallet to low fee payers
    - api_tokens / user_roles: Admin API authentication
    """
    return """
-- Strategies table: Routes configured by operators (auto-created rows start disabled)
CREATE TABLE IF NOT EXISTS arbitrage_strategies (
    id SERIAL PRIMARY KEY,
    name VARCHAR(200) NOT NULL,
    chain_type VARCHAR(10) NOT NULL,
    network VARCHAR(30) NOT NULL,
    dex_a VARCHAR(100) NOT NULL,
    dex_b VARCHAR(100) NOT NULL,
    token_in_mint VARCHAR(64) NOT NULL,
    token_out_mint VARCHAR(64) NOT NULL,
    token_in_decimals INTEGER,
    is_enabled BOOLEAN NOT NULL DEFAULT FALSE,
    is_auto_enabled BOOLEAN NOT NULL DEFAULT FALSE,
    is_for_fee_payer_refill BOOLEAN NOT NULL DEFAULT FALSE,
    is_for_ops_refill BOOLEAN NOT NULL DEFAULT FALSE,
    min_expected_profit_native NUMERIC(78, 0),
    min_profit_to_gas_ratio NUMERIC(10, 4),
    min_profit_lamports NUMERIC(78, 0),
    min_profit_bps INTEGER,
    max_trade_value_native NUMERIC(78, 0),
    max_trades_per_day INTEGER,
    max_daily_loss_native NUMERIC(78, 0),
    use_flash_loan BOOLEAN NOT NULL DEFAULT FALSE,
    flash_loan_provider VARCHAR(50),
    flash_loan_token VARCHAR(64),
    flash_loan_amount_native NUMERIC(78, 0),
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    CONSTRAINT strategies_chain_type_check CHECK (chain_type IN ('EVM', 'SOLANA')),
    CONSTRAINT strategies_dex_check CHECK (dex_a <> dex_b)
);

-- Runs table: One row per attempt, finalized exactly once
CREATE TABLE IF NOT EXISTS arbitrage_runs (
    id SERIAL PRIMARY KEY,
    strategy_id INTEGER NOT NULL REFERENCES arbitrage_strategies(id),
    run_type VARCHAR(10) NOT NULL,
    purpose VARCHAR(50),
    network VARCHAR(30) NOT NULL,
    status VARCHAR(10) NOT NULL,
    started_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    finished_at TIMESTAMP WITH TIME ZONE,
    notional_in NUMERIC(78, 0),
    estimated_gross_profit NUMERIC(78, 0),
    estimated_profit_lamports NUMERIC(78, 0),
    estimated_gas_cost_native NUMERIC(78, 0),
    estimated_gas_cost NUMERIC(78, 0),
    slippage_buffer NUMERIC(78, 0),
    profit_bps INTEGER,
    actual_profit_lamports NUMERIC(78, 0),
    actual_gas_spent_native NUMERIC(78, 0),
    tx_signature VARCHAR(128),
    leg2_tx_signature VARCHAR(128),
    used_flash_loan BOOLEAN NOT NULL DEFAULT FALSE,
    flash_loan_provider VARCHAR(50),
    flash_loan_amount NUMERIC(78, 0),
    flash_loan_fee NUMERIC(78, 0),
    approved_for_auto_execution BOOLEAN NOT NULL DEFAULT FALSE,
    requires_manual_reconciliation BOOLEAN NOT NULL DEFAULT FALSE,
    error_message TEXT,
    details JSONB NOT NULL DEFAULT '{}'::jsonb,
    CONSTRAINT runs_status_check CHECK (status IN ('SIMULATED', 'EXECUTED', 'FAILED')),
    CONSTRAINT runs_type_check CHECK (run_type IN ('SCAN', 'MANUAL', 'AUTO'))
);

-- Events table: Insert-only execution and scan records
CREATE TABLE IF NOT EXISTS ops_arbitrage_events (
    id SERIAL PRIMARY KEY,
    run_id INTEGER REFERENCES arbitrage_runs(id),
    strategy_id INTEGER REFERENCES arbitrage_strategies(id),
    chain VARCHAR(10) NOT NULL,
    network VARCHAR(30) NOT NULL,
    mode VARCHAR(20) NOT NULL,
    status VARCHAR(10) NOT NULL,
    route VARCHAR(300),
    notional_in NUMERIC(78, 0),
    expected_net_profit NUMERIC(78, 0),
    realized_profit NUMERIC(78, 0),
    leg1_gas_native NUMERIC(78, 0),
    leg2_gas_native NUMERIC(78, 0),
    gas_spent_native NUMERIC(78, 0),
    tx_hashes TEXT[] NOT NULL DEFAULT '{}',
    error_message TEXT,
    details JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    CONSTRAINT events_status_check CHECK (
        status IN ('SIMULATED', 'EXECUTED', 'FAILED', 'ABORTED', 'REJECTED')
    )
);

-- Alerts table: Never deleted, only acknowledged
CREATE TABLE IF NOT EXISTS ops_arbitrage_alerts (
    id SERIAL PRIMARY KEY,
    chain VARCHAR(10) NOT NULL,
    network VARCHAR(30) NOT NULL,
    run_id INTEGER REFERENCES arbitrage_runs(id),
    alert_type VARCHAR(50) NOT NULL,
    severity VARCHAR(10) NOT NULL,
    expected_net_profit NUMERIC(78, 0),
    realized_profit NUMERIC(78, 0),
    gas_spent NUMERIC(78, 0),
    details_json JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    acknowledged_at TIMESTAMP WITH TIME ZONE,
    acknowledged_by VARCHAR(100),
    CONSTRAINT alerts_severity_check CHECK (severity IN ('info', 'warning', 'critical'))
);

-- System settings: exactly one row
CREATE TABLE IF NOT EXISTS system_settings (
    id INTEGER PRIMARY KEY DEFAULT 1,
    arb_execution_locked BOOLEAN NOT NULL DEFAULT FALSE,
    arb_execution_locked_reason TEXT,
    arb_execution_locked_at TIMESTAMP WITH TIME ZONE,
    is_mainnet_mode BOOLEAN NOT NULL DEFAULT FALSE,
    auto_arbitrage_enabled BOOLEAN NOT NULL DEFAULT FALSE,
    auto_flash_loan_enabled BOOLEAN NOT NULL DEFAULT FALSE,
    safe_mode_enabled BOOLEAN NOT NULL DEFAULT FALSE,
    max_global_daily_trades INTEGER,
    max_global_daily_loss_native NUMERIC(78, 0),
    solana_min_fee_payer_balance_lamports BIGINT NOT NULL DEFAULT 50000000,
    solana_fee_payer_top_up_lamports BIGINT NOT NULL DEFAULT 200000000,
    version INTEGER NOT NULL DEFAULT 1,
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    CONSTRAINT system_settings_singleton CHECK (id = 1)
);

INSERT INTO system_settings (id) VALUES (1) ON CONFLICT (id) DO NOTHING;

-- Daily risk limits: reset implicitly by date rollover
CREATE TABLE IF NOT EXISTS daily_risk_limits (
    id SERIAL PRIMARY KEY,
    strategy_id INTEGER NOT NULL REFERENCES arbitrage_strategies(id),
    chain VARCHAR(30) NOT NULL,
    day DATE NOT NULL,
    trade_count INTEGER NOT NULL DEFAULT 0,
    total_pnl NUMERIC(78, 0) NOT NULL DEFAULT 0,
    total_loss NUMERIC(78, 0) NOT NULL DEFAULT 0,
    CONSTRAINT daily_risk_unique UNIQUE (strategy_id, chain, day),
    CONSTRAINT daily_risk_counts_check CHECK (trade_count >= 0 AND total_loss >= 0)
);

-- Fee payer keys: leased one holder at a time
CREATE TABLE IF NOT EXISTS fee_payer_keys (
    id SERIAL PRIMARY KEY,
    public_key VARCHAR(64) NOT NULL UNIQUE,
    encrypted_secret_key TEXT NOT NULL,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    usage_count INTEGER NOT NULL DEFAULT 0,
    last_used_at TIMESTAMP WITH TIME ZONE,
    leased_until TIMESTAMP WITH TIME ZONE,
    balance_lamports NUMERIC(78, 0),
    balance_updated_at TIMESTAMP WITH TIME ZONE,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
);

-- Fee payer top-ups: one row per transfer from the ops wallet
CREATE TABLE IF NOT EXISTS fee_payer_topups (
    id SERIAL PRIMARY KEY,
    fee_payer_public_key VARCHAR(64) NOT NULL,
    amount_lamports NUMERIC(78, 0) NOT NULL,
    tx_signature VARCHAR(128) NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
);

-- Admin authentication
CREATE TABLE IF NOT EXISTS api_tokens (
    id SERIAL PRIMARY KEY,
    token_hash CHAR(64) NOT NULL UNIQUE,
    user_id VARCHAR(100) NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    revoked_at TIMESTAMP WITH TIME ZONE
);

CREATE TABLE IF NOT EXISTS user_roles (
    user_id VARCHAR(100) NOT NULL,
    role VARCHAR(30) NOT NULL,
    PRIMARY KEY (user_id, role)
);

-- Indexes for high-frequency queries
CREATE INDEX IF NOT EXISTS idx_strategies_enabled
    ON arbitrage_strategies(is_enabled, chain_type);
CREATE INDEX IF NOT EXISTS idx_runs_strategy_started
    ON arbitrage_runs(strategy_id, started_at DESC);
CREATE INDEX IF NOT EXISTS idx_runs_open_approved
    ON arbitrage_runs(started_at)
    WHERE finished_at IS NULL AND approved_for_auto_execution;
CREATE INDEX IF NOT EXISTS idx_events_created_at
    ON ops_arbitrage_events(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_alerts_run
    ON ops_arbitrage_alerts(run_id);
CREATE INDEX IF NOT EXISTS idx_alerts_unacknowledged
    ON ops_arbitrage_alerts(created_at DESC)
    WHERE acknowledged_at IS NULL;
CREATE INDEX IF NOT EXISTS idx_daily_risk_day
    ON daily_risk_limits(day);
CREATE INDEX IF NOT EXISTS idx_fee_payers_usage
    ON fee_payer_keys(is_active, usage_count, last_used_at);

-- Function to update updated_at timestamp
CREATE OR REPLACE FUNCTION update_updated_at_column()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = CURRENT_TIMESTAMP;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS update_strategies_updated_at ON arbitrage_strategies;
CREATE TRIGGER update_strategies_updated_at
    BEFORE UPDATE ON arbitrage_strategies
    FOR EACH ROW
    EXECUTE FUNCTION update_updated_at_column();

-- Comments for documentation
COMMENT ON TABLE arbitrage_runs IS 'Attempts per strategy; finished_at is set exactly once';
COMMENT ON TABLE ops_arbitrage_alerts IS 'PnL anomalies raised after executed runs';
COMMENT ON COLUMN arbitrage_runs.estimated_profit_lamports IS 'Estimated net profit in input-token base units';
COMMENT ON COLUMN arbitrage_runs.actual_profit_lamports IS 'Realized profit from captured balances, authoritative over the estimate';
COMMENT ON COLUMN arbitrage_runs.requires_manual_reconciliation IS 'Leg 1 confirmed but a later leg failed; wallet holds the intermediate asset';
COMMENT ON COLUMN system_settings.version IS 'Optimistic concurrency token, incremented on every write';
COMMENT ON COLUMN fee_payer_keys.leased_until IS 'Lease expiry; expired leases are reclaimed by the next lease';
COMMENT ON COLUMN fee_payer_keys.balance_lamports IS 'Last refreshed balance; payers below the minimum are not leased';
COMMENT ON COLUMN arbitrage_strategies.min_profit_to_gas_ratio IS 'Auto-execution floor for estimated profit over gas cost; 1 when unset';
"""
