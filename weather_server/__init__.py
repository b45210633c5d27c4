"""Weather server: resilient access to NOAA and Open-Meteo."""
