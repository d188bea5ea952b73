from __future__ import annotations

import json
from typing import Any

# --- ingestion upserts -----------------------------------------------------
# Counters are seeded in ON CREATE and incremented in ON MATCH; the trailing SET
# recomputes derived rates from the already-updated counters in the same statement.

MERGE_LEAD = """
MERGE (l:Lead {leadId: $lead_id})
ON CREATE SET l.industry = $industry,
              l.companySize = $company_size,
              l.firstSeenAt = datetime($at),
              l.totalCalls = 1,
              l.successfulCalls = $success_inc
ON MATCH SET l.totalCalls = l.totalCalls + 1,
             l.successfulCalls = l.successfulCalls + $success_inc
SET l.successRate = toFloat(l.successfulCalls) / toFloat(l.totalCalls),
    l.lastContactedAt = datetime($at)
"""

MERGE_CONVERSATION = """
MERGE (l:Lead {leadId: $lead_id})
MERGE (c:Conversation {conversationId: $conversation_id})
ON CREATE SET c.leadId = $lead_id,
              c.outcome = $outcome,
              c.qualificationScore = $qualification_score,
              c.duration = $duration,
              c.timestamp = datetime($at),
              c.isSuccessful = $is_successful
MERGE (l)-[r:HAD_CONVERSATION]->(c)
ON CREATE SET r.timestamp = datetime($at)
"""

MERGE_BUYING_SIGNAL = """
MERGE (s:BuyingSignal {name: $name})
ON CREATE SET s.createdAt = datetime($at),
              s.totalOccurrences = 1,
              s.successfulOccurrences = $success_inc
ON MATCH SET s.totalOccurrences = s.totalOccurrences + 1,
             s.successfulOccurrences = s.successfulOccurrences + $success_inc
SET s.successRate = toFloat(s.successfulOccurrences) / toFloat(s.totalOccurrences),
    s.updatedAt = datetime($at)
WITH s
MATCH (c:Conversation {conversationId: $conversation_id})
MERGE (c)-[r:EXHIBITED_SIGNAL]->(s)
SET r.confidence = $confidence,
    r.context = $context,
    r.timestamp = datetime($at)
"""

MERGE_OBJECTION = """
MERGE (o:Objection {type: $objection_type})
ON CREATE SET o.createdAt = datetime($at),
              o.totalOccurrences = 1,
              o.overcomeCount = $overcome_inc
ON MATCH SET o.totalOccurrences = o.totalOccurrences + 1,
             o.overcomeCount = o.overcomeCount + $overcome_inc
SET o.overcomeRate = toFloat(o.overcomeCount) / toFloat(o.totalOccurrences),
    o.updatedAt = datetime($at)
WITH o
MATCH (c:Conversation {conversationId: $conversation_id})
MERGE (c)-[r:HAD_OBJECTION]->(o)
SET r.handlingStrategy = $handling_strategy,
    r.wasOvercome = $was_overcome,
    r.timestamp = datetime($at)
"""

MERGE_HANDLING_STRATEGY = """
MATCH (o:Objection {type: $objection_type})
MERGE (h:HandlingStrategy {strategy: $handling_strategy})
ON CREATE SET h.createdAt = datetime($at),
              h.successCount = 1,
              h.totalUses = 1
ON MATCH SET h.successCount = h.successCount + 1,
             h.totalUses = h.totalUses + 1
SET h.successRate = toFloat(h.successCount) / toFloat(h.totalUses),
    h.updatedAt = datetime($at)
MERGE (o)-[r:OVERCOME_BY]->(h)
ON CREATE SET r.uses = 1
ON MATCH SET r.uses = r.uses + 1
"""

MERGE_CONVERSATION_PATTERN = """
MERGE (p:ConversationPattern {patternId: $pattern_id})
ON CREATE SET p.type = $type,
              p.features = $features,
              p.weight = $weight,
              p.createdAt = datetime($at),
              p.totalOccurrences = 1,
              p.successfulOccurrences = $success_inc
ON MATCH SET p.totalOccurrences = p.totalOccurrences + 1,
             p.successfulOccurrences = p.successfulOccurrences + $success_inc
SET p.successRate = toFloat(p.successfulOccurrences) / toFloat(p.totalOccurrences),
    p.updatedAt = datetime($at)
WITH p
MATCH (c:Conversation {conversationId: $conversation_id})
MERGE (c)-[r:EXHIBITED_PATTERN]->(p)
SET r.timestamp = datetime($at)
"""

# The running mean reads totalCalls before it is incremented, so it is listed first.
MERGE_INDUSTRY = """
MERGE (i:Industry {name: $industry})
ON CREATE SET i.createdAt = datetime($at),
              i.totalCalls = 1,
              i.successfulCalls = $success_inc,
              i.avgQualificationScore = toFloat($qualification_score)
ON MATCH SET i.avgQualificationScore =
                 (coalesce(i.avgQualificationScore, 0.0) * i.totalCalls + $qualification_score)
                 / toFloat(i.totalCalls + 1),
             i.totalCalls = i.totalCalls + 1,
             i.successfulCalls = i.successfulCalls + $success_inc
SET i.successRate = toFloat(i.successfulCalls) / toFloat(i.totalCalls),
    i.updatedAt = datetime($at)
"""

MERGE_COMPANY_SIZE = """
MATCH (i:Industry {name: $industry})
MERGE (cs:CompanySize {size: $company_size})
MERGE (i)-[r:INCLUDES_SIZE]->(cs)
ON CREATE SET r.totalCalls = 1,
              r.successfulCalls = $success_inc
ON MATCH SET r.totalCalls = r.totalCalls + 1,
             r.successfulCalls = r.successfulCalls + $success_inc
SET r.successRate = toFloat(r.successfulCalls) / toFloat(r.totalCalls)
"""

MERGE_STRATEGY = """
MERGE (s:Strategy {strategyId: $strategy_id})
ON CREATE SET s.type = $type,
              s.industry = $industry,
              s.companySize = $company_size,
              s.signals = $signals,
              s.objections = $objections,
              s.createdAt = datetime($at),
              s.successCount = 1,
              s.totalUses = 1,
              s.avgQualificationScore = toFloat($qualification_score)
ON MATCH SET s.avgQualificationScore =
                 (coalesce(s.avgQualificationScore, 0.0) * s.totalUses + $qualification_score)
                 / toFloat(s.totalUses + 1),
             s.successCount = s.successCount + 1,
             s.totalUses = s.totalUses + 1
SET s.confidence = toFloat(s.successCount) / toFloat(s.totalUses),
    s.updatedAt = datetime($at)
WITH s
MATCH (c:Conversation {conversationId: $conversation_id})
MERGE (c)-[r:USED_STRATEGY]->(s)
SET r.timestamp = datetime($at)
"""

# --- recall reads ----------------------------------------------------------

FIND_SIMILAR_LEADS = """
MATCH (l:Lead {industry: $industry})
WHERE l.successRate > $min_success_rate
  AND l.totalCalls >= $min_total_calls
OPTIONAL MATCH (l)-[:HAD_CONVERSATION]->(c:Conversation {isSuccessful: true})
WITH l, count(c) AS successful_conversations
RETURN l.leadId AS lead_id,
       l.successRate AS success_rate,
       successful_conversations
ORDER BY success_rate DESC, successful_conversations DESC, lead_id ASC
LIMIT $limit
"""

FIND_STRATEGIES = """
MATCH (s:Strategy {industry: $industry})
WHERE s.confidence > $min_confidence
  AND ($company_size IS NULL OR s.companySize IS NULL OR s.companySize = $company_size)
RETURN s.strategyId AS strategy_id,
       s.type AS type,
       s.industry AS industry,
       s.companySize AS company_size,
       s.confidence AS confidence,
       s.successCount AS success_count,
       s.totalUses AS total_uses,
       s.signals AS signals,
       s.objections AS objections,
       s.avgQualificationScore AS avg_qualification_score
ORDER BY confidence DESC, success_count DESC, strategy_id ASC
LIMIT $limit
"""

FIND_INDUSTRY_OBJECTIONS = """
MATCH (:Lead {industry: $industry})-[:HAD_CONVERSATION]->(:Conversation)-[:HAD_OBJECTION]->(o:Objection)
WITH DISTINCT o
OPTIONAL MATCH (o)-[r:OVERCOME_BY]->(h:HandlingStrategy)
WITH o, r, h
ORDER BY r.uses DESC, h.strategy ASC
WITH o, collect(
    CASE WHEN h IS NULL THEN NULL
         ELSE {strategy: h.strategy, success_rate: h.successRate, uses: r.uses}
    END
) AS handling
RETURN o.type AS type,
       o.totalOccurrences AS total_occurrences,
       o.overcomeRate AS overcome_rate,
       handling[0..$strategies_per_objection] AS handling_strategies
ORDER BY total_occurrences DESC, type ASC
LIMIT $limit
"""

GET_INDUSTRY = """
MATCH (i:Industry {name: $industry})
RETURN i.name AS name,
       i.successRate AS success_rate,
       i.avgQualificationScore AS avg_qualification_score,
       i.totalCalls AS total_calls,
       i.successfulCalls AS successful_calls
"""

FIND_INDUSTRY_PATTERNS = """
MATCH (:Lead {industry: $industry})-[:HAD_CONVERSATION]->(c:Conversation {isSuccessful: true})
      -[:EXHIBITED_PATTERN]->(p:ConversationPattern)
WHERE p.successRate > $min_success_rate
WITH p, count(DISTINCT c) AS usage_count
RETURN p.patternId AS pattern_id,
       p.type AS type,
       p.successRate AS success_rate,
       p.features AS features,
       usage_count
ORDER BY success_rate DESC, usage_count DESC, pattern_id ASC
LIMIT $limit
"""

FIND_EFFECTIVE_SIGNALS = """
MATCH (:Lead {industry: $industry})-[:HAD_CONVERSATION]->(c:Conversation {isSuccessful: true})
      -[:EXHIBITED_SIGNAL]->(s:BuyingSignal)
WITH s, count(DISTINCT c) AS appearances
RETURN s.name AS name,
       s.successRate AS success_rate,
       appearances
ORDER BY success_rate DESC, appearances DESC, name ASC
LIMIT $limit
"""

FIND_OBJECTION_FREQUENCY = """
MATCH (:Lead {industry: $industry})-[:HAD_CONVERSATION]->(c:Conversation)-[:HAD_OBJECTION]->(o:Objection)
WITH o, count(DISTINCT c) AS frequency
RETURN o.type AS type,
       o.totalOccurrences AS total_occurrences,
       o.overcomeRate AS overcome_rate,
       frequency
ORDER BY frequency DESC, type ASC
LIMIT $limit
"""

# --- analytics -------------------------------------------------------------

OVERALL_STATS = """
MATCH (c:Conversation)
RETURN count(c) AS total_conversations,
       sum(CASE WHEN c.isSuccessful THEN 1 ELSE 0 END) AS successful_conversations
"""

TOP_INDUSTRIES = """
MATCH (i:Industry)
RETURN i.name AS industry,
       i.successRate AS success_rate,
       i.totalCalls AS total_calls,
       i.avgQualificationScore AS avg_qualification_score
ORDER BY success_rate DESC, industry ASC
LIMIT $limit
"""

TOP_BUYING_SIGNALS = """
MATCH (s:BuyingSignal)
WHERE s.totalOccurrences >= $min_occurrences
RETURN s.name AS signal,
       s.successRate AS success_rate,
       s.totalOccurrences AS occurrences
ORDER BY success_rate DESC, signal ASC
LIMIT $limit
"""

TOP_PATTERNS = """
MATCH (p:ConversationPattern)
WHERE p.totalOccurrences >= $min_occurrences
RETURN p.type AS pattern,
       p.patternId AS pattern_id,
       p.successRate AS success_rate,
       p.totalOccurrences AS occurrences
ORDER BY success_rate DESC, pattern_id ASC
LIMIT $limit
"""

COMMON_OBJECTIONS = """
MATCH (o:Objection)
RETURN o.type AS objection,
       o.overcomeRate AS overcome_rate,
       o.totalOccurrences AS occurrences
ORDER BY occurrences DESC, objection ASC
LIMIT $limit
"""

TOP_STRATEGIES = """
MATCH (s:Strategy)
WHERE s.totalUses >= $min_uses
RETURN s.strategyId AS strategy_id,
       s.type AS type,
       s.industry AS industry,
       s.confidence AS confidence,
       s.successCount AS success_count
ORDER BY confidence DESC, strategy_id ASC
LIMIT $limit
"""

LEARNING_PROGRESS = """
MATCH (c:Conversation)
WITH date(c.timestamp) AS day, c
WITH day,
     count(c) AS total_calls,
     sum(CASE WHEN c.isSuccessful THEN 1 ELSE 0 END) AS successful_calls
RETURN toString(day) AS date,
       total_calls,
       successful_calls,
       toFloat(successful_calls) / toFloat(total_calls) AS success_rate
ORDER BY date DESC
LIMIT $days
"""

UNDERPERFORMING_INDUSTRIES = """
MATCH (i:Industry)
WHERE i.totalCalls >= $min_calls AND i.successRate < $max_success_rate
RETURN i.name AS name, i.successRate AS success_rate, i.totalCalls AS total_calls
ORDER BY success_rate ASC, name ASC
LIMIT $limit
"""

DIFFICULT_OBJECTIONS = """
MATCH (o:Objection)
WHERE o.totalOccurrences >= $min_occurrences AND o.overcomeRate < $max_overcome_rate
RETURN o.type AS type, o.overcomeRate AS overcome_rate, o.totalOccurrences AS total_occurrences
ORDER BY total_occurrences DESC, type ASC
LIMIT $limit
"""

LOW_CONFIDENCE_STRATEGIES = """
MATCH (s:Strategy)
WHERE s.totalUses >= $min_uses AND s.confidence < $max_confidence
RETURN s.strategyId AS strategy_id,
       s.type AS type,
       s.confidence AS confidence,
       s.industry AS industry,
       s.totalUses AS total_uses
ORDER BY total_uses DESC, strategy_id ASC
LIMIT $limit
"""

PROVEN_PATTERNS = """
MATCH (p:ConversationPattern)
WHERE p.totalOccurrences >= $min_occurrences AND p.successRate > $min_success_rate
RETURN p.type AS type,
       p.patternId AS pattern_id,
       p.successRate AS success_rate,
       p.totalOccurrences AS occurrences
ORDER BY success_rate DESC, pattern_id ASC
LIMIT $limit
"""

NODE_COUNTS = """
MATCH (n)
RETURN labels(n)[0] AS label, count(n) AS count
"""

RELATIONSHIP_COUNTS = """
MATCH ()-[r]->()
RETURN type(r) AS type, count(r) AS count
"""

LEARNING_VELOCITY = """
MATCH (c:Conversation)
WHERE c.timestamp >= datetime($since)
WITH date(c.timestamp) AS day, count(c) AS calls
RETURN avg(calls) AS avg_per_day, sum(calls) AS total
"""


def _session_run(runner: Any, query: str, **params: Any) -> Any:
    return runner.run(query, **params)


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_json_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return {}
        try:
            parsed = json.loads(text)
        except ValueError:
            return {}
        if isinstance(parsed, dict):
            return parsed
    return {}
