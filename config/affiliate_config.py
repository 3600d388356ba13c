# config/affiliate_config.py
import yaml
import os
from typing import Dict, Any, List, Optional
from pathlib import Path
import logging

logger = logging.getLogger(__name__)

DEV_COOKIE_SECRET = "dev-cookie-secret-change-me"


class AffiliateConfig:
    """
    Centralized affiliate redirect configuration
    Loads from affiliate.yaml with environment overrides, then env vars on top
    """

    def __init__(self, config_path: str = None, environment: str = None):
        self.environment = environment or os.getenv('ENVIRONMENT', 'development')
        self.config_path = config_path or self._get_default_config_path()
        self._config = None
        self._load_config()

    def _get_default_config_path(self) -> str:
        """Get default config path"""
        current_dir = Path(__file__).parent
        return str(current_dir / 'affiliate.yaml')

    def _load_config(self):
        """Load configuration from YAML file"""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._config = yaml.safe_load(f) or {}

            self._apply_environment_overrides()

            logger.info(f"Loaded affiliate config v{self.version} for {self.environment}")

        except FileNotFoundError:
            logger.error(f"Config file not found: {self.config_path}")
            self._config = self._get_default_config()
        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error: {e}")
            self._config = self._get_default_config()

    def _apply_environment_overrides(self):
        """Apply environment-specific overrides"""
        if 'environments' in self._config and self.environment in self._config['environments']:
            env_overrides = self._config['environments'][self.environment]
            self._deep_merge(self._config, env_overrides)

    def _deep_merge(self, base: Dict, overrides: Dict):
        """Deep merge override values into base config"""
        for key, value in overrides.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _get_default_config(self) -> Dict:
        """Fallback default configuration"""
        return {
            "version": "1.0",
            "partner": {
                "name": "BNAdventure",
                "partner_id": "9",
                "tracking_id": "albaniavisit",
                "allowed_domains": ["bnadventure.com"],
                "search_url": "https://www.bnadventure.com/tours/",
            },
            "utm_defaults": {"source": "albaniavisit", "medium": "affiliate"},
            "cookie": {"name": "_aff_secure", "max_age_days": 30},
            "rate_limits": {
                "redirect": {"max_requests": 10, "window_seconds": 60},
                "track_click": {"max_requests": 50, "window_seconds": 60},
            },
            "click_log": {"timeout_seconds": 3.0},
            "tour_cache_ttl": 600,
        }

    def _section(self, name: str) -> Dict[str, Any]:
        return self._config.get(name) or {}

    @property
    def version(self) -> str:
        """Get config version"""
        return str(self._config.get('version', '1.0'))

    # Partner configuration
    @property
    def partner_id(self) -> str:
        return os.getenv('PARTNER_ID') or str(self._section('partner').get('partner_id', '9'))

    @property
    def tracking_id(self) -> str:
        return os.getenv('PARTNER_TRACKING_ID') or self._section('partner').get('tracking_id', 'albaniavisit')

    @property
    def allowed_domains(self) -> List[str]:
        """Partner hostnames a redirect may point at (subdomains included)"""
        raw = os.getenv('PARTNER_ALLOWED_DOMAINS')
        if raw:
            domains = raw.split(',')
        else:
            domains = self._section('partner').get('allowed_domains', ['bnadventure.com'])
        return [d.strip().lower().rstrip('.') for d in domains if d and d.strip()]

    @property
    def search_url(self) -> str:
        return self._section('partner').get('search_url', 'https://www.bnadventure.com/tours/')

    @property
    def utm_source(self) -> str:
        return self._section('utm_defaults').get('source', 'albaniavisit')

    @property
    def utm_medium(self) -> str:
        return self._section('utm_defaults').get('medium', 'affiliate')

    # Cookie configuration
    @property
    def cookie_secret(self) -> str:
        """HMAC secret for the attribution cookie; only development may run without one"""
        secret = os.getenv('COOKIE_SECRET', '')
        if secret:
            return secret
        if self.environment == 'development':
            logger.warning("COOKIE_SECRET not set - using development secret")
            return DEV_COOKIE_SECRET
        raise ValueError("COOKIE_SECRET must be set outside development")

    @property
    def cookie_name(self) -> str:
        return self._section('cookie').get('name', '_aff_secure')

    @property
    def cookie_max_age(self) -> int:
        """Cookie lifetime in seconds"""
        return int(self._section('cookie').get('max_age_days', 30)) * 24 * 60 * 60

    # Rate limits
    def get_rate_limit(self, limit_type: str) -> Dict[str, int]:
        """Get max_requests/window_seconds for a limiter"""
        limits = self._section('rate_limits').get(limit_type, {})
        result = {
            "max_requests": int(limits.get('max_requests', 60)),
            "window_seconds": int(limits.get('window_seconds', 60)),
        }
        if limit_type == 'redirect':
            if os.getenv('REDIRECT_RATE_LIMIT'):
                result["max_requests"] = int(os.getenv('REDIRECT_RATE_LIMIT'))
            if os.getenv('REDIRECT_RATE_WINDOW_SEC'):
                result["window_seconds"] = int(os.getenv('REDIRECT_RATE_WINDOW_SEC'))
        return result

    @property
    def rate_limit_backend(self) -> str:
        return os.getenv('RATE_LIMIT_BACKEND', self._config.get('rate_limit_backend', 'memory')).lower()

    # Click logging
    @property
    def click_log_timeout(self) -> float:
        raw = os.getenv('CLICK_LOG_TIMEOUT_SEC')
        if raw:
            return float(raw)
        return float(self._section('click_log').get('timeout_seconds', 3.0))

    @property
    def tour_cache_ttl(self) -> int:
        return int(self._config.get('tour_cache_ttl', 600))

    @property
    def admin_token(self) -> Optional[str]:
        return os.getenv('ADMIN_TOKEN') or None

    # Utility methods
    def validate_config(self) -> list:
        """Validate configuration and return list of issues"""
        issues = []

        for section in ['partner', 'rate_limits', 'cookie']:
            if section not in self._config:
                issues.append(f"Missing required section: {section}")

        if not self.allowed_domains:
            issues.append("Partner allow-list is empty - every redirect will fall back")

        search_host = self.search_url.split('//', 1)[-1].split('/', 1)[0].lower()
        if not any(search_host == d or search_host.endswith('.' + d) for d in self.allowed_domains):
            issues.append(f"Fallback search host {search_host} is not in the allow-list")

        return issues


# Global configuration instance
_config_instance = None


def get_config(environment: str = None) -> AffiliateConfig:
    """Get global configuration instance"""
    global _config_instance

    if _config_instance is None:
        _config_instance = AffiliateConfig(environment=environment)

    return _config_instance

