from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "grocery-trip-optimizer"
    env: str = "local"

    database_dsn: str = "sqlite:///./grocery_optimizer.db"

    # Google Distance Matrix. Empty key means every pair uses the haversine fallback.
    google_maps_api_key: str = ""
    distance_matrix_url: str = "https://maps.googleapis.com/maps/api/distancematrix/json"
    distance_timeout_s: float = 10.0
    distance_mode: str = "driving"
    distance_units: str = "metric"
    distance_max_origins: int = 25
    distance_max_destinations: int = 25
    distance_max_elements: int = 100
    distance_max_workers: int = 4

    # Trip defaults when the request leaves preferences out
    default_radius_km: float = 15.0
    default_max_stores: int = 5

    # Strategy tuning
    balanced_max_stores: int = 2
    fastest_availability_weight: float = 1000.0
    balanced_distance_floor_km: float = 0.5

    # Time model
    average_speed_kmh: float = 30.0
    instore_base_min: float = 5.0
    instore_per_item_min: float = 1.5

    # Chains used for the "savings vs shopping at one chain" comparison
    baseline_chains: list[str] = ["WALMART", "TARGET", "COSTCO"]

    class Config:
        env_file = ".env"


settings = Settings()
