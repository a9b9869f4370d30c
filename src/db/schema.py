"""
Database schema for the Spoqen dashboard.
Designed for Supabase (Postgres + auth.users) with Row Level Security.

Tables:
- profiles: One per user, contact/business info + billing customer ID
- ai_settings: One per user, greeting script + assistant linkage
- qualification_questions: Ordered questions the assistant asks callers
- subscriptions: Mirror of billing subscriptions (billing webhooks are the source of truth)
- customers: Mirror of billing customers, used to re-link missed webhooks
- call_analysis: Structured analysis from end-of-call reports
- phone_numbers: Provisioned telephony numbers
- faq_feedback: "Was this helpful?" votes on FAQ entries

Call records themselves are not stored; they are fetched live from the
voice-AI platform.
"""

TABLES = [
    "profiles",
    "ai_settings",
    "qualification_questions",
    "subscriptions",
    "customers",
    "call_analysis",
    "phone_numbers",
    "faq_feedback",
]

SCHEMA_SQL = """
CREATE EXTENSION IF NOT EXISTS "pgcrypto";

-- Profiles
CREATE TABLE IF NOT EXISTS public.profiles (
    id UUID PRIMARY KEY REFERENCES auth.users(id) ON DELETE CASCADE,
    email TEXT NOT NULL,
    full_name TEXT,
    phone_number TEXT,
    business_name TEXT,
    stripe_customer_id TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW() NOT NULL,
    updated_at TIMESTAMPTZ DEFAULT NOW() NOT NULL
);

-- AI settings
CREATE TABLE IF NOT EXISTS public.ai_settings (
    user_id UUID PRIMARY KEY REFERENCES auth.users(id) ON DELETE CASCADE,
    ai_name TEXT DEFAULT 'Ava',
    greeting_script TEXT,
    summary_email TEXT,
    vapi_assistant_id TEXT UNIQUE,
    knowledge_tool_id TEXT,
    knowledge_file_ids TEXT[] DEFAULT '{}',
    email_notifications BOOLEAN DEFAULT TRUE,
    timezone TEXT DEFAULT 'America/New_York',
    welcome_completed BOOLEAN DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT NOW() NOT NULL,
    updated_at TIMESTAMPTZ DEFAULT NOW() NOT NULL
);

-- Qualification questions
CREATE TABLE IF NOT EXISTS public.qualification_questions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
    question_text TEXT NOT NULL,
    position INTEGER NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW() NOT NULL
);

-- Subscriptions
-- user_id is NULL until the subscription is linked to a profile
CREATE TABLE IF NOT EXISTS public.subscriptions (
    id TEXT PRIMARY KEY,
    user_id UUID REFERENCES auth.users(id) ON DELETE SET NULL,
    stripe_customer_id TEXT,
    status TEXT NOT NULL CHECK (
        status IN ('active', 'trialing', 'past_due', 'paused', 'canceled', 'pending')
    ),
    price_id TEXT,
    quantity INTEGER DEFAULT 1,
    cancel_at_period_end BOOLEAN DEFAULT FALSE,
    current_period_start_at TIMESTAMPTZ,
    current_period_end_at TIMESTAMPTZ,
    cancel_at TIMESTAMPTZ,
    canceled_at TIMESTAMPTZ,
    ended_at TIMESTAMPTZ,
    trial_end_at TIMESTAMPTZ,
    tier_type TEXT DEFAULT 'paid' CHECK (tier_type IN ('paid', 'free')),
    current BOOLEAN DEFAULT TRUE,
    created_at TIMESTAMPTZ DEFAULT NOW() NOT NULL,
    updated_at TIMESTAMPTZ DEFAULT NOW() NOT NULL
);

-- Billing customers
CREATE TABLE IF NOT EXISTS public.customers (
    customer_id TEXT PRIMARY KEY,
    email TEXT NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW() NOT NULL,
    updated_at TIMESTAMPTZ DEFAULT NOW() NOT NULL
);

-- Call analysis
CREATE TABLE IF NOT EXISTS public.call_analysis (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID REFERENCES auth.users(id) ON DELETE CASCADE,
    vapi_call_id TEXT NOT NULL UNIQUE,
    call_purpose TEXT,
    sentiment TEXT CHECK (sentiment IN ('positive', 'negative', 'neutral')),
    lead_quality TEXT CHECK (lead_quality IN ('hot', 'warm', 'cold')),
    key_points TEXT[],
    follow_up_items TEXT[],
    urgent_concerns TEXT[],
    analyzed_at TIMESTAMPTZ DEFAULT NOW(),
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Phone numbers
CREATE TABLE IF NOT EXISTS public.phone_numbers (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL UNIQUE REFERENCES auth.users(id) ON DELETE CASCADE,
    provider TEXT NOT NULL DEFAULT 'twilio',
    provider_number_id TEXT,
    vapi_phone_number_id TEXT,
    e164_number TEXT,
    status TEXT DEFAULT 'active' CHECK (status IN ('active', 'released')),
    created_at TIMESTAMPTZ DEFAULT NOW() NOT NULL
);

-- FAQ feedback
CREATE TABLE IF NOT EXISTS public.faq_feedback (
    id TEXT PRIMARY KEY,
    question_id TEXT NOT NULL,
    feedback TEXT NOT NULL CHECK (feedback IN ('helpful', 'not_helpful')),
    timestamp TIMESTAMPTZ NOT NULL,
    user_agent TEXT,
    session_id TEXT,
    ip_address TEXT,
    referrer TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW() NOT NULL
);

-- Row Level Security
-- Users can only touch their own rows; the API uses the service role.

ALTER TABLE public.profiles ENABLE ROW LEVEL SECURITY;
ALTER TABLE public.ai_settings ENABLE ROW LEVEL SECURITY;
ALTER TABLE public.qualification_questions ENABLE ROW LEVEL SECURITY;
ALTER TABLE public.subscriptions ENABLE ROW LEVEL SECURITY;
ALTER TABLE public.customers ENABLE ROW LEVEL SECURITY;
ALTER TABLE public.call_analysis ENABLE ROW LEVEL SECURITY;
ALTER TABLE public.phone_numbers ENABLE ROW LEVEL SECURITY;
ALTER TABLE public.faq_feedback ENABLE ROW LEVEL SECURITY;

DROP POLICY IF EXISTS profiles_own ON public.profiles;
CREATE POLICY profiles_own ON public.profiles
    FOR ALL USING (auth.uid() = id) WITH CHECK (auth.uid() = id);

DROP POLICY IF EXISTS ai_settings_own ON public.ai_settings;
CREATE POLICY ai_settings_own ON public.ai_settings
    FOR ALL USING (auth.uid() = user_id) WITH CHECK (auth.uid() = user_id);

DROP POLICY IF EXISTS questions_own ON public.qualification_questions;
CREATE POLICY questions_own ON public.qualification_questions
    FOR ALL USING (auth.uid() = user_id) WITH CHECK (auth.uid() = user_id);

-- Subscriptions are written only by billing webhooks
DROP POLICY IF EXISTS subscriptions_select_own ON public.subscriptions;
CREATE POLICY subscriptions_select_own ON public.subscriptions
    FOR SELECT USING (auth.uid() = user_id);

DROP POLICY IF EXISTS call_analysis_select_own ON public.call_analysis;
CREATE POLICY call_analysis_select_own ON public.call_analysis
    FOR SELECT USING (auth.uid() = user_id);

DROP POLICY IF EXISTS phone_numbers_select_own ON public.phone_numbers;
CREATE POLICY phone_numbers_select_own ON public.phone_numbers
    FOR SELECT USING (auth.uid() = user_id);
"""

INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_profiles_email ON public.profiles(email);
CREATE INDEX IF NOT EXISTS idx_profiles_stripe_customer ON public.profiles(stripe_customer_id);

CREATE INDEX IF NOT EXISTS idx_questions_user_position ON public.qualification_questions(user_id, position);

CREATE INDEX IF NOT EXISTS idx_subscriptions_user ON public.subscriptions(user_id);
CREATE INDEX IF NOT EXISTS idx_subscriptions_status ON public.subscriptions(status);
CREATE INDEX IF NOT EXISTS idx_subscriptions_customer ON public.subscriptions(stripe_customer_id);

-- One active subscription per user
CREATE UNIQUE INDEX IF NOT EXISTS idx_subscriptions_one_active
    ON public.subscriptions(user_id) WHERE status = 'active';

CREATE INDEX IF NOT EXISTS idx_customers_email ON public.customers(email);

CREATE INDEX IF NOT EXISTS idx_call_analysis_user ON public.call_analysis(user_id);
CREATE INDEX IF NOT EXISTS idx_call_analysis_analyzed_at ON public.call_analysis(analyzed_at);

CREATE INDEX IF NOT EXISTS idx_faq_feedback_question ON public.faq_feedback(question_id);
"""
