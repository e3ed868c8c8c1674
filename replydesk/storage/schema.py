"""Supabase schema for the review pipeline.

Run ``SCHEMA_SQL`` in the Supabase SQL editor. The constraints here carry the
pipeline's invariants: one review row per Google review id, at most one
unpublished response per review, and a version column for compare-and-swap
edits.
"""

SCHEMA_SQL = """
-- ============================================================================
-- ReplyDesk Database Schema
-- Run this SQL in Supabase SQL Editor to create the required tables
-- ============================================================================

-- -----------------------------------------------------------------------------
-- Businesses
-- -----------------------------------------------------------------------------

CREATE TABLE IF NOT EXISTS businesses (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL REFERENCES auth.users(id),
    name TEXT NOT NULL,
    gmb_account_id TEXT,
    gmb_location_id TEXT,
    gmb_location_name TEXT,
    response_limit INTEGER,
    responses_used INTEGER NOT NULL DEFAULT 0,
    is_active BOOLEAN NOT NULL DEFAULT true,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_businesses_user_id ON businesses(user_id);

-- -----------------------------------------------------------------------------
-- Reviews
-- gmb_review_id is the natural key; sync upserts against it
-- -----------------------------------------------------------------------------

CREATE TABLE IF NOT EXISTS reviews (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    business_id UUID NOT NULL REFERENCES businesses(id),
    gmb_review_id TEXT NOT NULL UNIQUE,
    author_name TEXT,
    author_photo_url TEXT,
    star_rating INTEGER NOT NULL CHECK (star_rating BETWEEN 1 AND 5),
    review_text TEXT,
    create_time TIMESTAMPTZ,
    update_time TIMESTAMPTZ,
    sentiment TEXT CHECK (sentiment IN ('positive', 'neutral', 'negative')),
    is_responded BOOLEAN NOT NULL DEFAULT false,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_reviews_business_created ON reviews(business_id, created_at DESC);

-- -----------------------------------------------------------------------------
-- Responses
-- -----------------------------------------------------------------------------

CREATE TABLE IF NOT EXISTS responses (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    review_id UUID NOT NULL REFERENCES reviews(id),
    business_id UUID NOT NULL REFERENCES businesses(id),
    content TEXT NOT NULL,
    tone TEXT,
    status TEXT NOT NULL DEFAULT 'generated'
        CHECK (status IN ('generated', 'approved', 'published')),
    ai_model TEXT,
    ai_tokens_used INTEGER,
    edit_history JSONB NOT NULL DEFAULT '[]',
    approved_by UUID,
    approved_at TIMESTAMPTZ,
    published_at TIMESTAMPTZ,
    gmb_reply_id TEXT,
    rejection_reason TEXT,
    version INTEGER NOT NULL DEFAULT 1,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- At most one unpublished response per review
CREATE UNIQUE INDEX IF NOT EXISTS idx_responses_one_in_flight
    ON responses(review_id) WHERE status <> 'published';

-- -----------------------------------------------------------------------------
-- Usage Ledger (append-only)
-- -----------------------------------------------------------------------------

CREATE TABLE IF NOT EXISTS usage_logs (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL,
    business_id UUID REFERENCES businesses(id),
    action TEXT NOT NULL CHECK (action IN ('review_fetch', 'ai_response', 'email_sent', 'api_call')),
    tokens_used INTEGER DEFAULT 0,
    cost_cents INTEGER DEFAULT 0,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_usage_logs_user_action ON usage_logs(user_id, action, created_at);

-- -----------------------------------------------------------------------------
-- Brand Settings (one row per business)
-- -----------------------------------------------------------------------------

CREATE TABLE IF NOT EXISTS brand_settings (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    business_id UUID NOT NULL UNIQUE REFERENCES businesses(id),
    user_id UUID NOT NULL,
    tone TEXT DEFAULT 'professional',
    greeting TEXT,
    closing TEXT,
    response_length TEXT DEFAULT 'medium',
    include_coupon BOOLEAN DEFAULT false,
    coupon_code TEXT,
    auto_publish BOOLEAN DEFAULT false,
    notify_on_negative BOOLEAN DEFAULT true,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- -----------------------------------------------------------------------------
-- Google OAuth tokens
-- -----------------------------------------------------------------------------

CREATE TABLE IF NOT EXISTS api_keys (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL,
    provider TEXT NOT NULL,
    access_token TEXT NOT NULL,
    refresh_token TEXT,
    expires_at TIMESTAMPTZ,
    is_active BOOLEAN DEFAULT true,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE (user_id, provider)
);

-- -----------------------------------------------------------------------------
-- Notification Preferences
-- -----------------------------------------------------------------------------

CREATE TABLE IF NOT EXISTS notification_preferences (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL UNIQUE,
    email TEXT,
    email_enabled BOOLEAN DEFAULT true,
    email_for_new_reviews BOOLEAN DEFAULT true,
    email_for_responses_needed BOOLEAN DEFAULT true,
    email_for_negative_reviews BOOLEAN DEFAULT true,
    email_digest TEXT DEFAULT 'none' CHECK (email_digest IN ('none', 'daily', 'weekly')),
    digest_send_day INTEGER CHECK (digest_send_day BETWEEN 0 AND 6),
    digest_send_time TEXT DEFAULT '09:00',
    last_digest_sent TIMESTAMPTZ,
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- -----------------------------------------------------------------------------
-- Published-response counter
-- -----------------------------------------------------------------------------

CREATE OR REPLACE FUNCTION increment_response_count(business_uuid UUID)
RETURNS VOID AS $$
BEGIN
    UPDATE businesses
    SET responses_used = responses_used + 1, updated_at = NOW()
    WHERE id = business_uuid;
END;
$$ LANGUAGE plpgsql;

-- -----------------------------------------------------------------------------
-- Updated At Trigger Function
-- -----------------------------------------------------------------------------

CREATE OR REPLACE FUNCTION update_updated_at_column()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = NOW();
    RETURN NEW;
END;
$$ language 'plpgsql';

DROP TRIGGER IF EXISTS update_responses_updated_at ON responses;
CREATE TRIGGER update_responses_updated_at
    BEFORE UPDATE ON responses
    FOR EACH ROW
    EXECUTE FUNCTION update_updated_at_column();

DROP TRIGGER IF EXISTS update_reviews_updated_at ON reviews;
CREATE TRIGGER update_reviews_updated_at
    BEFORE UPDATE ON reviews
    FOR EACH ROW
    EXECUTE FUNCTION update_updated_at_column();
"""


def get_schema_sql() -> str:
    """Get the SQL that creates the pipeline tables, constraints and RPCs."""
    return SCHEMA_SQL
