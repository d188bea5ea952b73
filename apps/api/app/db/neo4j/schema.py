from __future__ import annotations

SCHEMA_STATEMENTS = [
    "CREATE CONSTRAINT lead_id_unique IF NOT EXISTS FOR (l:Lead) REQUIRE l.leadId IS UNIQUE",
    "CREATE CONSTRAINT conversation_id_unique IF NOT EXISTS FOR (c:Conversation) REQUIRE c.conversationId IS UNIQUE",
    "CREATE CONSTRAINT buying_signal_name_unique IF NOT EXISTS FOR (s:BuyingSignal) REQUIRE s.name IS UNIQUE",
    "CREATE CONSTRAINT objection_type_unique IF NOT EXISTS FOR (o:Objection) REQUIRE o.type IS UNIQUE",
    "CREATE CONSTRAINT handling_strategy_unique IF NOT EXISTS FOR (h:HandlingStrategy) REQUIRE h.strategy IS UNIQUE",
    "CREATE CONSTRAINT pattern_id_unique IF NOT EXISTS FOR (p:ConversationPattern) REQUIRE p.patternId IS UNIQUE",
    "CREATE CONSTRAINT industry_name_unique IF NOT EXISTS FOR (i:Industry) REQUIRE i.name IS UNIQUE",
    "CREATE CONSTRAINT company_size_unique IF NOT EXISTS FOR (cs:CompanySize) REQUIRE cs.size IS UNIQUE",
    "CREATE CONSTRAINT strategy_id_unique IF NOT EXISTS FOR (s:Strategy) REQUIRE s.strategyId IS UNIQUE",
    "CREATE INDEX lead_industry_idx IF NOT EXISTS FOR (l:Lead) ON (l.industry)",
    "CREATE INDEX lead_company_size_idx IF NOT EXISTS FOR (l:Lead) ON (l.companySize)",
    "CREATE INDEX lead_success_rate_idx IF NOT EXISTS FOR (l:Lead) ON (l.successRate)",
    "CREATE INDEX conversation_successful_idx IF NOT EXISTS FOR (c:Conversation) ON (c.isSuccessful)",
    "CREATE INDEX pattern_success_rate_idx IF NOT EXISTS FOR (p:ConversationPattern) ON (p.successRate)",
    "CREATE INDEX strategy_industry_idx IF NOT EXISTS FOR (s:Strategy) ON (s.industry)",
    "CREATE INDEX strategy_confidence_idx IF NOT EXISTS FOR (s:Strategy) ON (s.confidence)",
]
