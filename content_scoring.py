"""
Heuristic content scoring for the blog platform.

Every scorer here is plain arithmetic over the title and body text: there is
no trained model and no language processing beyond keyword matching. Inputs
of ``None`` score as empty text, so none of these functions raise on missing
fields. ``trending_score`` is the one non-deterministic placeholder.
"""

import logging
import random
import re
from typing import Any, Dict, Iterable, List, Optional

from slugify import slugify

from metrics_stats import average

logger = logging.getLogger(__name__)


EMOTIONAL_WORDS = ["amazing", "incredible", "shocking", "surprising", "love", "hate"]
SPAM_PHRASES = ["buy now", "click here", "free money", "guaranteed", "limited time"]
INAPPROPRIATE_WORDS = ["hate", "violence", "discrimination", "harassment"]
POSITIVE_WORDS = ["good", "great", "excellent", "amazing", "wonderful", "love"]
NEGATIVE_WORDS = ["bad", "terrible", "awful", "hate", "horrible", "worst"]
SPAM_PUNCTUATION = "!@#$%"

CATEGORY_KEYWORDS = {
    "Technology": ["tech", "technology", "software"],
    "Health": ["health", "fitness", "wellness"],
    "Business": ["business", "finance", "money"],
}

TOPIC_KEYWORDS = [
    ("Technology", ["technology", "software"]),
    ("Health", ["health", "fitness"]),
    ("Business", ["business", "finance"]),
    ("Travel", ["travel", "vacation"]),
]

CONTENT_TYPE_MARKERS = [
    ("Tutorial", ["how to", "tutorial"]),
    ("Review", ["review", "rating"]),
    ("News", ["news", "breaking"]),
    ("Opinion", ["opinion", "think"]),
]

WORDS_PER_MINUTE = 200

# Privacy and compliance screening
PII_PATTERNS = {
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "phone": re.compile(r"\b\d{3}-\d{3}-\d{4}\b"),
    "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
}
COPYRIGHT_INDICATORS = ["\u00a9", "copyright", "all rights reserved", "proprietary"]
FRAUD_WORDS = ["spam", "scam", "fraud", "hate", "violence"]
SHOUTING_SYMBOLS = "!@#$%^&*()"

RECOMMENDATION_TOPICS = [
    "AI and Machine Learning",
    "Web Development",
    "Digital Marketing",
    "Productivity Tips",
    "Health and Wellness",
    "Financial Planning",
    "Travel Guides",
    "Technology Reviews",
    "Career Development",
]
TOPIC_SUGGESTED_KEYWORDS = {
    "AI and Machine Learning": ["artificial intelligence", "neural networks", "deep learning"],
    "Web Development": ["javascript", "react", "nodejs", "frontend", "backend"],
}
DEFAULT_SUGGESTED_KEYWORDS = ["general", "content", "blog"]
MAX_RECOMMENDATIONS = 10


def _text(value: Optional[str]) -> str:
    return value or ""


class ContentScorer:
    """
    Scores blog content for readability, SEO, engagement and safety.

    Also bundles the analysis reports built from those scores: quality
    analysis, categorization, moderation and the 100-point SEO audit.
    """

    # Basic text counts

    def count_words(self, content: Optional[str]) -> int:
        return len(_text(content).split())

    def count_sentences(self, content: Optional[str]) -> int:
        return len([part for part in re.split(r"[.!?]+", _text(content)) if part.strip()])

    def count_syllables(self, content: Optional[str]) -> int:
        """Vowel count, a deliberately rough stand-in for syllables"""
        return len(re.sub(r"[^aeiou]", "", _text(content).lower()))

    def has_headings(self, content: Optional[str]) -> bool:
        content = _text(content)
        return "#" in content or "<h" in content

    def has_bullet_points(self, content: Optional[str]) -> bool:
        content = _text(content)
        return "*" in content or "-" in content or "<li>" in content

    def has_images(self, content: Optional[str]) -> bool:
        content = _text(content)
        return "![" in content or "<img" in content

    def has_links(self, content: Optional[str]) -> bool:
        content = _text(content)
        return "http" in content or "[" in content

    # Scores

    def readability(self, content: Optional[str]) -> float:
        """
        Flesch-style reading ease.

        206.835 - 1.015 * (words / sentences) - 84.6 * (syllables / words),
        or 0.0 when there are no words or no sentences.
        """
        words = self.count_words(content)
        sentences = self.count_sentences(content)
        if words == 0 or sentences == 0:
            return 0.0

        syllables = self.count_syllables(content)
        return 206.835 - 1.015 * (words / sentences) - 84.6 * (syllables / words)

    def seo_score(self, title: Optional[str], content: Optional[str]) -> float:
        title = _text(title)
        content = _text(content)
        content_lower = content.lower()
        score = 0.0

        if 30 <= len(title) <= 60:
            score += 20
        if len(content) >= 1000:
            score += 20
        if self.has_headings(content):
            score += 15

        for word in title.lower().split():
            if len(word) > 3 and word in content_lower:
                score += 5

        if "http" in content:
            score += 10

        return min(100.0, score)

    def engagement_prediction(self, content: Optional[str]) -> float:
        content = _text(content)
        content_lower = content.lower()
        engagement = 0.5

        if 500 <= len(content) <= 2000:
            engagement += 0.2

        engagement += min(0.1, content.count("?") * 0.02)

        for word in EMOTIONAL_WORDS:
            if word in content_lower:
                engagement += 0.05

        return round(min(1.0, engagement), 4)

    def detect_spam(self, content: Optional[str]) -> bool:
        content_lower = _text(content).lower()
        return any(phrase in content_lower for phrase in SPAM_PHRASES)

    def detect_inappropriate(self, content: Optional[str]) -> bool:
        content_lower = _text(content).lower()
        return any(word in content_lower for word in INAPPROPRIATE_WORDS)

    def spam_score(self, content: Optional[str]) -> float:
        content = _text(content)
        length = len(content)
        score = 0.0

        upper_count = sum(1 for char in content if char.isupper())
        if upper_count > length * 0.3:
            score += 0.3

        punct_count = sum(1 for char in content if char in SPAM_PUNCTUATION)
        if punct_count > length * 0.1:
            score += 0.2

        if self.detect_spam(content):
            score += 0.5

        return round(min(1.0, score), 4)

    def inappropriate_score(self, content: Optional[str]) -> float:
        return 0.8 if self.detect_inappropriate(content) else 0.1

    def policy_violations(self, content: Optional[str]) -> List[str]:
        content = _text(content)
        violations = []

        if self.detect_spam(content):
            violations.append("SPAM_CONTENT")
        if self.detect_inappropriate(content):
            violations.append("INAPPROPRIATE_CONTENT")
        if len(content) < 50:
            violations.append("INSUFFICIENT_CONTENT")

        return violations

    def safety_score(self, is_spam: bool, is_inappropriate: bool, violations: List[str]) -> float:
        """
        1.0 minus 0.4 for spam, 0.5 for inappropriate language and 0.1 per
        policy violation, floored at zero.

        The spam and inappropriate flags also appear in ``violations``, so
        they are deducted twice.
        """
        score = 1.0
        if is_spam:
            score -= 0.4
        if is_inappropriate:
            score -= 0.5
        score -= len(violations) * 0.1

        return round(max(0.0, score), 4)

    def moderation_recommendation(self, safety_score: float, violations: List[str]) -> str:
        if safety_score < 0.3:
            return "REJECT"
        if safety_score < 0.6:
            return "REVIEW_REQUIRED"
        if violations:
            return "FLAG_FOR_REVIEW"
        return "APPROVE"

    def moderate_content(self, content: Optional[str]) -> Dict[str, Any]:
        """Run automated moderation and recommend an action"""
        is_spam = self.detect_spam(content)
        is_inappropriate = self.detect_inappropriate(content)
        violations = self.policy_violations(content)
        safety = self.safety_score(is_spam, is_inappropriate, violations)

        result = {
            "is_spam": is_spam,
            "spam_score": self.spam_score(content),
            "is_inappropriate": is_inappropriate,
            "inappropriate_score": self.inappropriate_score(content),
            "policy_violations": violations,
            "safety_score": safety,
            "recommendation": self.moderation_recommendation(safety, violations),
            "privacy": self.privacy_compliance(content)
        }

        logger.debug("Moderation result: %s", result["recommendation"])
        return result

    def personal_info_found(self, content: Optional[str]) -> List[str]:
        """Names of the personal data patterns present in the text"""
        content = _text(content)
        return [name for name, pattern in PII_PATTERNS.items() if pattern.search(content)]

    def has_spam_patterns(self, content: Optional[str]) -> bool:
        """Mostly upper case, or more than 10% symbol characters"""
        content = _text(content)
        if not content:
            return False

        uppercase = sum(1 for char in content if char.isupper())
        symbols = sum(1 for char in content if char in SHOUTING_SYMBOLS)
        return uppercase / len(content) > 0.5 or symbols > len(content) * 0.1

    def privacy_compliance(self, content: Optional[str]) -> Dict[str, Any]:
        """
        Screen text for personal data, copyright notices and fraud wording.

        Each check is True when the content passes it; ``compliant`` is True
        only when every check passes. ``personal_info`` lists which personal
        data patterns (email, phone, ssn) matched.
        """
        content_lower = _text(content).lower()
        personal_info = self.personal_info_found(content)

        checks = {
            "no_personal_info": not personal_info,
            "no_copyright_content": not any(marker in content_lower for marker in COPYRIGHT_INDICATORS),
            "appropriate_content": not any(word in content_lower for word in FRAUD_WORDS),
            "no_spam_patterns": not self.has_spam_patterns(content),
        }

        result = dict(checks)
        result["personal_info"] = personal_info
        result["compliant"] = all(checks.values())
        return result

    def sentiment(self, content: Optional[str]) -> str:
        content_lower = _text(content).lower()
        positive = sum(content_lower.count(word) for word in POSITIVE_WORDS)
        negative = sum(content_lower.count(word) for word in NEGATIVE_WORDS)

        if positive > negative:
            return "POSITIVE"
        if negative > positive:
            return "NEGATIVE"
        return "NEUTRAL"

    # Categorization

    def extract_keywords(self, content: Optional[str], limit: int = 10) -> List[str]:
        """First ``limit`` distinct words longer than four characters"""
        keywords = []
        for word in re.split(r"\W+", _text(content).lower()):
            if len(word) > 4 and word not in keywords:
                keywords.append(word)
                if len(keywords) == limit:
                    break
        return keywords

    def determine_categories(self, keywords: List[str]) -> List[str]:
        categories = [
            name for name, markers in CATEGORY_KEYWORDS.items()
            if any(keyword in markers for keyword in keywords)
        ]
        return categories or ["General"]

    def primary_topic(self, content: Optional[str]) -> str:
        content_lower = _text(content).lower()
        for topic, markers in TOPIC_KEYWORDS:
            if any(marker in content_lower for marker in markers):
                return topic
        return "General"

    def classify_content_type(self, content: Optional[str]) -> str:
        # Case-sensitive: "How to" does not mark a tutorial
        content = _text(content)
        for content_type, markers in CONTENT_TYPE_MARKERS:
            if any(marker in content for marker in markers):
                return content_type
        return "Article"

    def categorize_content(self, content: Optional[str]) -> Dict[str, Any]:
        keywords = self.extract_keywords(content)
        return {
            "keywords": keywords,
            "categories": self.determine_categories(keywords),
            "sentiment": self.sentiment(content),
            "primary_topic": self.primary_topic(content),
            "content_type": self.classify_content_type(content)
        }

    # Reports

    def analyze_content_quality(self, title: Optional[str], content: Optional[str]) -> Dict[str, Any]:
        """
        Quality metrics, structure flags and improvement recommendations for
        one piece of content.
        """
        analysis = {
            "readability_score": self.readability(content),
            "seo_score": self.seo_score(title, content),
            "engagement_prediction": self.engagement_prediction(content),
            "content_length": len(_text(content)),
            "word_count": self.count_words(content),
            "sentence_count": self.count_sentences(content),
            "has_headings": self.has_headings(content),
            "has_bullet_points": self.has_bullet_points(content),
            "has_images": self.has_images(content),
            "has_links": self.has_links(content),
        }
        analysis["recommendations"] = self._quality_recommendations(analysis)
        return analysis

    def _quality_recommendations(self, analysis: Dict[str, Any]) -> List[str]:
        recommendations = []

        if analysis["readability_score"] < 60:
            recommendations.append("Improve readability by using shorter sentences and simpler words")
        if analysis["seo_score"] < 70:
            recommendations.append("Optimize for SEO by adding relevant keywords and improving structure")
        if not analysis["has_headings"]:
            recommendations.append("Add headings to improve content structure and readability")
        if analysis["word_count"] < 300:
            recommendations.append("Consider expanding content for better engagement and SEO")

        return recommendations

    def predict_content_success(self, title: Optional[str], content: Optional[str],
                                history: Iterable[Any] = ()) -> float:
        """
        Success likelihood in [0, 1].

        ``history`` is a collection of past metric records; their mean
        ``engagement_rate`` nudges the prediction.
        """
        score = 0.5

        if 30 <= len(_text(title)) <= 60:
            score += 0.1
        if 1000 <= len(_text(content)) <= 3000:
            score += 0.15

        score += (self.readability(content) / 100) * 0.2

        history = list(history)
        if history:
            score += (average(record.engagement_rate for record in history) / 100) * 0.15

        return round(min(1.0, max(0.0, score)), 4)

    def keyword_density(self, title: Optional[str], content: Optional[str]) -> Dict[str, float]:
        """Occurrences per hundred words of each title word longer than three characters"""
        if not title or not content:
            return {}

        content_lower = content.lower()
        total_words = self.count_words(content)
        density = {}

        for keyword in title.lower().split():
            if len(keyword) <= 3:
                continue
            count = len(re.findall(r"\b" + re.escape(keyword) + r"\b", content_lower))
            density[keyword] = count * 100.0 / total_words if total_words else 0.0

        return density

    def reading_time(self, content: Optional[str]) -> int:
        """Minutes at 200 words per minute, never less than one"""
        return max(1, self.count_words(content) // WORDS_PER_MINUTE)

    def analyze_seo(self, title: Optional[str], content: Optional[str],
                    meta_description: Optional[str] = None) -> Dict[str, Any]:
        title_length = len(_text(title))
        meta_length = len(_text(meta_description))

        analysis = {
            "title_length": title_length,
            "title_optimal": 30 <= title_length <= 60,
            "content_length": len(_text(content)),
            "word_count": self.count_words(content),
            "reading_time": self.reading_time(content),
            "has_meta_description": meta_length > 0,
            "meta_description_length": meta_length,
            "meta_description_optimal": meta_description is not None and 120 <= meta_length <= 160,
            "keyword_density": self.keyword_density(title, content),
        }
        analysis["seo_score"] = self._seo_audit_score(analysis)
        analysis["recommendations"] = self._seo_recommendations(analysis)
        return analysis

    def _seo_audit_score(self, analysis: Dict[str, Any]) -> int:
        score = 0

        if analysis["title_optimal"]:
            score += 20
        elif analysis["title_length"] > 0:
            score += 10

        word_count = analysis["word_count"]
        if word_count >= 300:
            score += 30
        elif word_count >= 150:
            score += 20
        elif word_count > 0:
            score += 10

        if analysis["meta_description_optimal"]:
            score += 20
        elif analysis["has_meta_description"]:
            score += 10

        density = analysis["keyword_density"]
        if density:
            avg_density = average(density.values())
            if 1 <= avg_density <= 3:
                score += 15
            elif avg_density > 0:
                score += 8

        reading_time = analysis["reading_time"]
        if 2 <= reading_time <= 10:
            score += 15
        elif reading_time > 0:
            score += 8

        return min(100, score)

    def _seo_recommendations(self, analysis: Dict[str, Any]) -> Dict[str, str]:
        recommendations = {}

        title_length = analysis["title_length"]
        if title_length < 30:
            recommendations["title"] = "Consider making your title longer (30-60 characters) for better SEO"
        elif title_length > 60:
            recommendations["title"] = "Consider shortening your title (30-60 characters) for better SEO"

        if analysis["word_count"] < 300:
            recommendations["content"] = "Consider adding more content. Articles with 300+ words tend to rank better"

        meta_length = analysis["meta_description_length"]
        if not analysis["has_meta_description"]:
            recommendations["meta_description"] = "Add a meta description to improve search engine visibility"
        elif meta_length < 120:
            recommendations["meta_description"] = "Consider making your meta description longer (120-160 characters)"
        elif meta_length > 160:
            recommendations["meta_description"] = "Consider shortening your meta description (120-160 characters)"

        return recommendations

    def generate_slug(self, title: Optional[str]) -> str:
        return slugify(_text(title)) or "untitled"

    def trending_score(self, topic: str) -> float:
        """Placeholder until a real trend feed exists; returns a random score"""
        return random.random()

    # Recommendations

    def _interest_list(self, user_interests) -> List[str]:
        if isinstance(user_interests, str):
            user_interests = user_interests.split(",")
        interests = [str(interest).strip().lower() for interest in user_interests or []]
        return [interest for interest in interests if interest]

    def _history_interests(self, history) -> List[str]:
        """Primary topics of previously read posts; plain strings count as post bodies"""
        interests = []
        for item in history or []:
            if isinstance(item, str):
                text = item
            else:
                text = f"{_text(getattr(item, 'title', None))} {_text(getattr(item, 'content', None))}"
            topic = self.primary_topic(text)
            if topic != "General" and topic.lower() not in interests:
                interests.append(topic.lower())
        return interests

    def _topic_keywords(self, topic: str) -> List[str]:
        return list(TOPIC_SUGGESTED_KEYWORDS.get(topic, DEFAULT_SUGGESTED_KEYWORDS))

    def _topic_relevance(self, topic: str, interests: List[str]) -> float:
        """
        Share of interests the topic covers, matching the topic name or its
        suggested keywords. 0.5 when there are no interests to go on.
        """
        if not interests:
            return 0.5

        topic_lower = topic.lower()
        keywords = self._topic_keywords(topic)
        matches = [
            1.0 if interest in topic_lower or interest in keywords else 0.0
            for interest in interests
        ]
        return average(matches)

    def topic_recommendations(self, user_interests, history=None,
                              limit: int = MAX_RECOMMENDATIONS) -> List[Dict[str, Any]]:
        """
        Suggest topics to write about.

        Args:
            user_interests: Comma separated string or list of interests.
            history: Posts the user engaged with (models or raw text); their
                primary topics count as extra interests.
            limit: Maximum number of recommendations.

        Topics no interest matches are dropped. The rest are ordered by
        relevance, highest first, keeping catalogue order on ties.
        """
        interests = self._interest_list(user_interests)
        for interest in self._history_interests(history):
            if interest not in interests:
                interests.append(interest)

        recommendations = []
        for topic in RECOMMENDATION_TOPICS:
            relevance = self._topic_relevance(topic, interests)
            if relevance <= 0:
                continue
            recommendations.append({
                "topic": topic,
                "relevance_score": relevance,
                "trending_score": self.trending_score(topic),
                "suggested_keywords": self._topic_keywords(topic)
            })

        recommendations.sort(key=lambda item: item["relevance_score"], reverse=True)
        logger.debug("Recommended %d topics for interests %s", len(recommendations), interests)
        return recommendations[:limit]


content_scorer = ContentScorer()
