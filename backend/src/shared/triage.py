"""
AI Quality Triage.

Asks a hosted model (Amazon Bedrock, or a SageMaker endpoint) to classify a
submission against the project's instructions as APPROVED, REJECTED or PENDING.

The engine fails open toward human review: no model configured, a timeout,
a service error or any malformed answer all come back as PENDING. It never
auto-approves or auto-rejects on failure.
"""
import json
import random
import re
import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from typing import Any, Dict, Optional
from shared.config import config
from shared.errors import TriageEngineUnavailable
from shared.logging import logger
from shared.models import TriageStatus

FAILED_REASON = 'AI Quality Check failed or API key is missing.'
INVALID_JSON_REASON = 'AI response was not valid JSON.'
PARSE_FAILED_REASON = 'AI failed to parse response.'
INVALID_STATUS_REASON = 'AI returned an invalid status.'
NO_REASON = 'No reason provided by AI.'

_JSON_OBJECT = re.compile(r'\{.*\}', re.DOTALL)

SYSTEM_PROMPT = """You are an AI Quality Assurance agent for a data annotation platform called Nexus AI.
Your role is to review a user's submission against a set of project instructions.
You must respond with a JSON object in the format: {"status": "APPROVED" | "REJECTED" | "PENDING", "reason": "A brief, one-sentence explanation for your decision."}
- APPROVED: The submission perfectly follows all instructions.
- REJECTED: The submission clearly violates the instructions or is low quality.
- PENDING: The submission is good but not perfect, or it is too complex for you to judge. It needs human review.
Your response must be *only* the JSON object, with no other text."""

_bedrock_client = None
_sagemaker_client = None


def _client_config() -> BotoConfig:
    # One attempt, bounded wait: the submit request is holding on this call
    return BotoConfig(
        connect_timeout=config.TRIAGE_TIMEOUT_SECONDS,
        read_timeout=config.TRIAGE_TIMEOUT_SECONDS,
        retries={'max_attempts': 1, 'mode': 'standard'}
    )


def get_bedrock_client():
    """Get or create Bedrock Runtime client."""
    global _bedrock_client
    if _bedrock_client is None:
        _bedrock_client = boto3.client('bedrock-runtime', region_name=config.AWS_REGION, config=_client_config())
    return _bedrock_client


def get_sagemaker_client():
    """Get or create SageMaker Runtime client."""
    global _sagemaker_client
    if _sagemaker_client is None:
        _sagemaker_client = boto3.client('sagemaker-runtime', region_name=config.AWS_REGION, config=_client_config())
    return _sagemaker_client


def project_criteria(project: Dict[str, Any]) -> Dict[str, Any]:
    """The slice of a project the model judges against."""
    return {
        'title': project.get('title'),
        'description': project.get('description'),
        'detailedInstructions': project.get('detailedInstructions'),
        'taskType': project.get('taskType'),
        'projectDomain': project.get('projectDomain'),
    }


def build_prompt(content: str, criteria: Dict[str, Any]) -> str:
    """User turn of the prompt: instructions, then the submission."""
    return (
        "Here are the project instructions:\n"
        "--- PROJECT INSTRUCTIONS ---\n"
        f"{json.dumps(criteria, indent=2, default=str)}\n"
        "--- END OF INSTRUCTIONS ---\n\n"
        "Here is the user's submission:\n"
        "--- USER SUBMISSION ---\n"
        f"{content}\n"
        "--- END OF SUBMISSION ---\n\n"
        'Please evaluate the submission and respond with a JSON object containing "status" and "reason".'
    )


def parse_verdict(raw_response: str) -> Dict[str, str]:
    """
    Turn the model's raw text into {'status', 'reason'}.

    Only the first {...} span is considered. Anything that is not a JSON
    object with a status in APPROVED/REJECTED/PENDING maps to PENDING.
    """
    match = _JSON_OBJECT.search(raw_response or '')
    if not match:
        logger.error(f"AI Error: No valid JSON found in response: {raw_response!r}")
        return {'status': TriageStatus.PENDING, 'reason': INVALID_JSON_REASON}

    try:
        verdict = json.loads(match.group(0))
    except ValueError:
        logger.error(f"AI Error: Failed to parse JSON response: {raw_response!r}")
        return {'status': TriageStatus.PENDING, 'reason': PARSE_FAILED_REASON}

    if not isinstance(verdict, dict):
        return {'status': TriageStatus.PENDING, 'reason': PARSE_FAILED_REASON}

    status = verdict.get('status')
    status = str(status).strip().upper() if status else TriageStatus.PENDING
    reason = verdict.get('reason') or NO_REASON

    if status not in TriageStatus.ALL:
        logger.error(f"AI Error: Invalid status returned: {status}")
        return {'status': TriageStatus.PENDING, 'reason': INVALID_STATUS_REASON}

    return {'status': status, 'reason': str(reason)}


class QualityTriageEngine:
    """Remote classifier with a guaranteed PENDING fallback."""

    def __init__(self, provider: str = None, model_id: str = None, endpoint_name: str = None, client=None):
        self.provider = (provider or config.TRIAGE_PROVIDER).lower()
        self.model_id = model_id if model_id is not None else config.TRIAGE_MODEL_ID
        self.endpoint_name = endpoint_name if endpoint_name is not None else config.SAGEMAKER_ENDPOINT_NAME
        self._client = client

    @property
    def configured(self) -> bool:
        if self.provider == 'sagemaker':
            return bool(self.endpoint_name)
        return bool(self.model_id)

    def evaluate(self, content: str, criteria: Dict[str, Any]) -> Dict[str, str]:
        """
        Classify a submission.

        Args:
            content: Submitted text
            criteria: Project title, description, instructions, task type and domain

        Returns:
            dict: {'status': APPROVED | REJECTED | PENDING, 'reason': str}
        """
        if not self.configured:
            logger.info("AI Service SKIPPED: No model configured. Defaulting to PENDING.")
            return {'status': TriageStatus.PENDING, 'reason': FAILED_REASON}

        try:
            raw_response = self._invoke(build_prompt(content, criteria))
        except TriageEngineUnavailable as e:
            logger.error(f"Error during AI Quality Check: {e}")
            return {'status': TriageStatus.PENDING, 'reason': FAILED_REASON}

        verdict = parse_verdict(raw_response)
        logger.info(
            f"[AI QUALITY CHECK] Content length: {len(content)} chars, "
            f"Project: {criteria.get('title') or 'Unknown'}, Triage Status: {verdict['status']}, "
            f"Reason: {verdict['reason']}"
        )
        return verdict

    def _invoke(self, prompt: str) -> str:
        try:
            if self.provider == 'sagemaker':
                return self._invoke_sagemaker(prompt)
            return self._invoke_bedrock(prompt)
        except (BotoCoreError, ClientError, KeyError, IndexError, ValueError) as e:
            raise TriageEngineUnavailable(str(e)) from e

    def _invoke_bedrock(self, prompt: str) -> str:
        client = self._client or get_bedrock_client()
        response = client.converse(
            modelId=self.model_id,
            system=[{'text': SYSTEM_PROMPT}],
            messages=[{'role': 'user', 'content': [{'text': prompt}]}],
            inferenceConfig={
                'temperature': config.TRIAGE_TEMPERATURE,
                'maxTokens': config.TRIAGE_MAX_TOKENS
            }
        )
        return response['output']['message']['content'][0]['text'].strip()

    def _invoke_sagemaker(self, prompt: str) -> str:
        client = self._client or get_sagemaker_client()
        response = client.invoke_endpoint(
            EndpointName=self.endpoint_name,
            ContentType='application/json',
            Accept='application/json',
            Body=json.dumps({
                'inputs': f"{SYSTEM_PROMPT}\n\n{prompt}",
                'parameters': {
                    'temperature': config.TRIAGE_TEMPERATURE,
                    'max_new_tokens': config.TRIAGE_MAX_TOKENS
                }
            })
        )
        result = json.loads(response['Body'].read().decode('utf-8'))
        # Text-generation containers answer [{"generated_text": ...}] or {"generated_text": ...}
        if isinstance(result, list):
            result = result[0]
        if isinstance(result, dict):
            return str(result.get('generated_text', '')).strip()
        return str(result).strip()


# =============================================================================
# Local scoring (independent of the remote engine)
# =============================================================================

def local_quality_score(rng: Optional[random.Random] = None) -> int:
    """Simulated quality score, uniform over 50-100 inclusive."""
    return (rng or random).randint(50, 100)


def reviewer_score(rng: Optional[random.Random] = None) -> int:
    """Simulated reviewer-assist score, uniform over 70-100 inclusive."""
    return (rng or random).randint(70, 100)


def score_feedback(score: int) -> str:
    """Canned reviewer feedback for a score band."""
    if score >= 95:
        return 'Exceptional quality. Outstanding clarity, precision, and attention to detail.'
    if score >= 90:
        return 'Excellent clarity and accuracy. Minor enhancements could elevate this further.'
    if score >= 85:
        return 'Strong submission with good structure. Some areas could benefit from additional detail.'
    if score >= 80:
        return 'Good overall quality. Requires minor linguistic review and refinement.'
    return 'Acceptable quality. Needs improvement in clarity and completeness.'
