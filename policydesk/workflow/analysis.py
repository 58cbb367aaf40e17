# policydesk/workflow/analysis.py

import logging

from policydesk import config
from policydesk.llm.multi_model_client import MultiModelClient
from policydesk.models import DocumentAnalysis, GenerationParams
from policydesk.prompts.prompt_builder import ContextDocument, build_prompt
from policydesk.prompts.system_prompts import DOCUMENT_ANALYSIS_TEMPLATE
from policydesk.workflow.response_recovery import recover_analysis

logger = logging.getLogger(__name__)


class DocumentAnalyzer:
    """
    Summary and key points for one document.

    InferenceError propagates; a response that cannot be parsed comes
    back as a degraded analysis.
    """

    def __init__(
        self,
        llm_client: MultiModelClient,
        max_new_tokens: int = config.ANALYSIS_MAX_NEW_TOKENS,
        temperature: float = config.INFERENCE_TEMPERATURE,
    ):
        self._llm_client = llm_client
        self._params = GenerationParams(
            max_new_tokens=max_new_tokens,
            temperature=temperature,
        )

    async def analyze(self, text: str, title: str = "Uploaded document") -> DocumentAnalysis:

        prompt = build_prompt(
            DOCUMENT_ANALYSIS_TEMPLATE,
            [ContextDocument(title=title, content=text)],
        )

        result = await self._llm_client.generate(prompt, self._params)

        analysis = recover_analysis(result.text)

        logger.info(
            "Document analyzed",
            extra={
                "model": result.model,
                "key_points": len(analysis.key_points),
                "degraded": analysis.degraded,
            },
        )

        return analysis
